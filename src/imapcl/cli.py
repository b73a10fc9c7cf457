# =============================================================================
# imapcl Command Line
# =============================================================================
# Wires configuration, credentials, the IMAP client and the stores together
# for a single run:
#
#   imapcl server [-p port] [-T [-c certfile] [-C certaddr]] [-n] [-h]
#                 -a auth_file [-b MAILBOX] -o out_dir
#
# Command-line flags override values from the config file. A configured
# account can stand in for the server argument (--account, or the default
# account).
#
# "-h" selects headers-only mode, so help is only available as --help.
# =============================================================================

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

from imapcl import __app_name__, __version__
from imapcl.config import Config, ConfigError, print_paths
from imapcl.core import Account
from imapcl.imap import IMAPClient, IMAPError, SyncManager, create_ssl_context
from imapcl.imap.tls import DEFAULT_CERT_DIR
from imapcl.storage import ArtifactStore, PersistenceError, StateStore

logger = logging.getLogger(__name__)


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError("The specified port is not a valid number.") from None
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError(f"Port out of range: {port}")
    return port


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="imapcl: download messages from an IMAP4rev1 mailbox",
        add_help=False,
    )

    parser.add_argument(
        "server",
        nargs="?",
        help="IMAP server name or address (optional with a configured account)",
    )

    # Connection
    parser.add_argument("-p", dest="port", type=_port, help="Server port (default 143, 993 with -T)")
    parser.add_argument("-T", dest="tls", action="store_true", help="Connect with TLS (imaps)")
    parser.add_argument("-c", dest="cert_file", help="CA certificate file for verifying the server")
    parser.add_argument(
        "-C",
        dest="cert_dir",
        help=f"CA certificate directory for verifying the server (default: {DEFAULT_CERT_DIR})",
    )

    # What to download
    parser.add_argument("-n", dest="new_only", action="store_true", help="Only download new (unseen) messages")
    parser.add_argument("-h", dest="headers_only", action="store_true", help="Only download message headers")
    parser.add_argument("-a", dest="auth_file", help="File with 'username = ...' and 'password = ...'")
    parser.add_argument("-b", dest="mailbox", help="Mailbox to download (default: INBOX)")
    parser.add_argument("-o", dest="out_dir", help="Output directory for messages and sync state")

    # Program
    parser.add_argument(
        "--account",
        help="Use a configured account (default: the config's default account)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (default: XDG config location)",
    )

    parser.add_argument(
        "--save-account",
        metavar="NAME",
        help="Store the given connection settings as a named account in the config file and exit",
    )

    parser.add_argument(
        "--paths",
        action="store_true",
        help="Print configuration paths and exit",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (verbose logging)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--help",
        action="help",
        help="Show this help message and exit",
    )

    return parser.parse_args(argv)


def build_account(args: argparse.Namespace, config: Config) -> Account:
    """
    Combine the configured account (if any) with command-line overrides.

    Raises:
        ConfigError: If no server is given and no account is configured.
    """
    base = None
    if args.account:
        base = config.get_account(args.account)
        if base is None:
            raise ConfigError(f"Unknown account: {args.account}")
    elif not args.server:
        base = config.get_account()

    if base is None:
        if not args.server:
            raise ConfigError(
                "No server given. Usage: imapcl server [-p port] [-T] -a auth_file -o out_dir"
            )
        base = Account(server=args.server, use_tls=args.tls)

    overrides = {}
    if args.server and args.server != base.server:
        overrides["server"] = args.server
    if args.tls and not base.use_tls:
        overrides["use_tls"] = True
        overrides["port"] = 0
    if args.port:
        overrides["port"] = args.port
    for name in ("cert_file", "cert_dir", "auth_file", "mailbox"):
        value = getattr(args, name)
        if value:
            overrides[name] = value

    return dataclasses.replace(base, **overrides) if overrides else base


def save_account(name: str, account: Account, config: Config, path: Path | None = None) -> int:
    """
    Add (or replace) a named account in the config file.

    The first saved account also becomes the default account.

    Returns:
        Exit code (0 for success, 1 if the file could not be written).
    """
    config.accounts[name] = dataclasses.replace(account, name=name)
    if not config.default_account:
        config.default_account = name

    try:
        config.save(path)
    except OSError as e:
        print(f"Error: Could not write config file: {e}", file=sys.stderr)
        return 1

    print(f"Saved account {name} to {path or Config.config_file_path()}")
    return 0


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for imapcl.

    This function:
        1. Parses command-line arguments
        2. Handles special commands (--paths, --version, --help)
        3. Loads configuration and builds the account (--save-account
           stores it and stops here)
        4. Runs one sync of the selected mailbox

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    args = parse_args(argv)
    _setup_logging(args.debug)

    # Handle --paths flag
    if args.paths:
        print_paths()
        return 0

    try:
        config = Config.load(args.config)
        account = build_account(args, config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.save_account:
        return save_account(args.save_account, account, config, args.config)

    out_dir = Path(args.out_dir) if args.out_dir else config.sync.out_path
    headers_only = args.headers_only or config.sync.headers_only
    new_only = args.new_only or config.sync.new_only
    logger.debug(f"Account {account.name}: {account}, mailbox {account.mailbox}, output {out_dir}")

    try:
        ssl_context = None
        if account.use_tls:
            cert_dir = account.cert_dir
            if not account.cert_file and not cert_dir and Path(DEFAULT_CERT_DIR).is_dir():
                cert_dir = DEFAULT_CERT_DIR
            ssl_context = create_ssl_context(account.cert_file, cert_dir)

        client = IMAPClient(
            account,
            ssl_context=ssl_context,
            connect_timeout=config.network.connect_timeout,
            read_timeout=config.network.read_timeout,
            response_timeout=config.network.response_timeout,
            max_idle_reads=config.network.max_idle_reads,
        )
        manager = SyncManager(
            client,
            StateStore(out_dir),
            ArtifactStore(out_dir),
            account,
            headers_only=headers_only,
            new_only=new_only,
        )
        result = manager.run(account.mailbox)
    except (IMAPError, PersistenceError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(result.summary())
    return 0


if __name__ == "__main__":
    sys.exit(main())
