"""Tests for the imapcl command line."""

import pytest

from imapcl import cli
from imapcl.config import Config, ConfigError
from imapcl.core import Account
from imapcl.imap import IMAPClient


@pytest.fixture(autouse=True)
def isolated_config(temp_dir, monkeypatch):
    """Keep the user's real config out of CLI tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(temp_dir / "data"))


@pytest.fixture
def fake_network(imap_server, monkeypatch):
    """Make the CLI talk to the fake server instead of opening sockets."""
    created = []

    def client_factory(account, **kwargs):
        created.append((account, kwargs))
        return IMAPClient(
            account,
            transport_factory=lambda acct: imap_server.reopen() if imap_server.closed else imap_server,
            max_idle_reads=5,
        )

    monkeypatch.setattr(cli, "IMAPClient", client_factory)
    return created


class TestParseArgs:
    def test_short_flags(self):
        args = cli.parse_args([
            "imap.example.com", "-p", "1143", "-T", "-c", "ca.pem", "-C", "/certs",
            "-n", "-h", "-a", "auth", "-b", "Archive", "-o", "out",
        ])
        assert args.server == "imap.example.com"
        assert args.port == 1143
        assert args.tls and args.new_only and args.headers_only
        assert (args.cert_file, args.cert_dir) == ("ca.pem", "/certs")
        assert (args.auth_file, args.mailbox, args.out_dir) == ("auth", "Archive", "out")

    def test_defaults(self):
        args = cli.parse_args(["imap.example.com"])
        assert args.port is None
        assert not args.tls and not args.headers_only and not args.new_only

    def test_bad_port(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.parse_args(["imap.example.com", "-p", "abc"])
        assert excinfo.value.code == 2
        assert "not a valid number" in capsys.readouterr().err

    def test_long_help(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.parse_args(["--help"])
        assert excinfo.value.code == 0
        assert "-a" in capsys.readouterr().out


class TestBuildAccount:
    def test_plain_defaults(self):
        account = cli.build_account(cli.parse_args(["imap.example.com"]), Config())
        assert account.port == 143
        assert account.mailbox == "INBOX"
        assert not account.use_tls

    def test_tls_default_port(self):
        account = cli.build_account(cli.parse_args(["imap.example.com", "-T"]), Config())
        assert account.port == 993
        assert account.use_tls

    def test_explicit_port(self):
        account = cli.build_account(cli.parse_args(["imap.example.com", "-T", "-p", "1993"]), Config())
        assert account.port == 1993

    def test_configured_account_with_overrides(self):
        config = Config(default_account="work")
        config.accounts["work"] = Account(server="imap.work.example", name="work", username="jdoe")

        account = cli.build_account(cli.parse_args(["-b", "Sent", "-T"]), config)

        assert account.server == "imap.work.example"
        assert account.username == "jdoe"
        assert account.mailbox == "Sent"
        assert account.port == 993

    def test_unknown_account(self):
        with pytest.raises(ConfigError, match="Unknown account"):
            cli.build_account(cli.parse_args(["--account", "nope"]), Config())

    def test_no_server(self):
        with pytest.raises(ConfigError, match="No server"):
            cli.build_account(cli.parse_args([]), Config())


class TestMain:
    def test_paths(self, capsys):
        assert cli.main(["--paths"]) == 0
        assert "config.toml" in capsys.readouterr().out

    def test_missing_server(self, capsys):
        assert cli.main([]) == 1
        assert capsys.readouterr().err.startswith("Error: No server given")

    def test_download(self, fake_network, auth_file, temp_dir, capsys):
        out = temp_dir / "out"

        code = cli.main(["imap.example.com", "-a", str(auth_file), "-o", str(out)])

        assert code == 0
        assert capsys.readouterr().out.strip() == "Downloaded 3 messages from mailbox INBOX"
        assert (out / "imap.example.com" / "INBOX" / "message_uid_1.eml").is_file()
        account, kwargs = fake_network[0]
        assert kwargs["ssl_context"] is None
        assert kwargs["max_idle_reads"] == 20

    def test_second_run_up_to_date(self, fake_network, auth_file, temp_dir, capsys):
        argv = ["imap.example.com", "-a", str(auth_file), "-o", str(temp_dir / "out")]
        cli.main(argv)
        capsys.readouterr()

        assert cli.main(argv) == 0
        assert capsys.readouterr().out.strip() == "Mailbox INBOX is up to date."

    def test_headers_only_new_only(self, fake_network, imap_server, auth_file, temp_dir, capsys):
        imap_server.unseen = {1, 3}
        out = temp_dir / "out"

        assert cli.main(["imap.example.com", "-n", "-h", "-a", str(auth_file), "-o", str(out)]) == 0

        assert capsys.readouterr().out.strip() == "Downloaded 2 new messages from mailbox INBOX"
        state = (out / "imap.example.com" / "INBOX" / "state.txt").read_text()
        assert state.startswith("HeadersOnly: true\n")

    def test_login_rejected(self, fake_network, imap_server, auth_file, temp_dir, capsys):
        imap_server.accept_login = False

        code = cli.main(["imap.example.com", "-a", str(auth_file), "-o", str(temp_dir / "out")])

        assert code == 1
        assert "Authentication of user test@example.com failed" in capsys.readouterr().err

    def test_missing_mailbox(self, fake_network, auth_file, temp_dir, capsys):
        code = cli.main([
            "imap.example.com", "-a", str(auth_file), "-b", "Nope", "-o", str(temp_dir / "out"),
        ])

        assert code == 1
        assert "Nope" in capsys.readouterr().err

    def test_default_output_directory(self, fake_network, auth_file, temp_dir):
        assert cli.main(["imap.example.com", "-a", str(auth_file)]) == 0
        mail = temp_dir / "data" / "imapcl" / "mail"
        assert (mail / "imap.example.com" / "INBOX" / "state.txt").is_file()

    def test_save_account(self, capsys):
        code = cli.main([
            "imap.example.com", "-T", "-a", "/home/me/auth", "-b", "Archive", "--save-account", "work",
        ])

        assert code == 0
        assert "Saved account work" in capsys.readouterr().out
        config = Config.load()
        assert config.default_account == "work"
        account = config.get_account()
        assert (account.server, account.port, account.use_tls) == ("imap.example.com", 993, True)
        assert (account.auth_file, account.mailbox) == ("/home/me/auth", "Archive")

    def test_saved_account_is_used(self, fake_network, auth_file, temp_dir, capsys):
        cli.main(["imap.example.com", "-a", str(auth_file), "--save-account", "home"])
        capsys.readouterr()

        assert cli.main(["-o", str(temp_dir / "out")]) == 0

        account, _ = fake_network[0]
        assert (account.name, account.server) == ("home", "imap.example.com")
        assert capsys.readouterr().out.strip() == "Downloaded 3 messages from mailbox INBOX"
