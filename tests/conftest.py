# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures for the imapcl test suite.
#
# FakeTransport stands in for a socket: server output is queued with feed()
# or produced per command line the client writes. FakeIMAPServer builds on
# it with a small in-memory mailbox that answers LOGIN, SELECT, UID SEARCH,
# UID FETCH and LOGOUT the way a real server would.
# =============================================================================

import tempfile
from collections.abc import Callable
from pathlib import Path

import pytest

from imapcl.core import Account
from imapcl.imap import IMAPClient
from imapcl.imap.errors import TransportError

GREETING = b"* OK [CAPABILITY IMAP4rev1] Test server ready\r\n"


class FakeTransport:
    """
    In-memory Transport.

    Attributes:
        commands: Command lines the client wrote, without CRLF.
        chunk_size: Largest number of bytes handed out per read (None = all).
        write_chunk: Largest number of bytes accepted per write (None = all).
        stall_writes: If True, every write accepts zero bytes.
        eof: If True, a read with nothing queued means the peer closed.
    """

    def __init__(
        self,
        greeting: bytes = GREETING,
        *,
        chunk_size: int | None = None,
        write_chunk: int | None = None,
    ) -> None:
        self.outgoing = bytearray(greeting)
        self.received = bytearray()
        self.commands: list[str] = []
        self.scripts: dict[str, str | Callable[[str, str], str]] = {}
        self.chunk_size = chunk_size
        self.write_chunk = write_chunk
        self.stall_writes = False
        self.eof = False
        self.closed = False

    def feed(self, data: str | bytes) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.outgoing += data

    def on(self, command: str, reply: str | Callable[[str, str], str]) -> None:
        """
        Script the reply to commands starting with `command`.

        A string reply may contain "{tag}"; a callable gets (tag, command).
        The longest matching prefix wins.
        """
        self.scripts[command.upper()] = reply

    def respond(self, tag: str, command: str) -> str | None:
        matches = [key for key in self.scripts if command.upper().startswith(key)]
        if not matches:
            return None
        reply = self.scripts[max(matches, key=len)]
        if callable(reply):
            return reply(tag, command)
        return reply.replace("{tag}", tag)

    # Transport interface

    def write(self, data) -> int:
        if self.closed:
            raise TransportError("Transport is closed")
        if self.stall_writes:
            return 0
        data = bytes(data)
        if self.write_chunk:
            data = data[:self.write_chunk]
        self.received += data

        while b"\r\n" in self.received:
            line, _, rest = bytes(self.received).partition(b"\r\n")
            self.received = bytearray(rest)
            text = line.decode("utf-8")
            self.commands.append(text)
            tag, _, command = text.partition(" ")
            reply = self.respond(tag, command)
            if reply is not None:
                self.feed(reply)
        return len(data)

    def read(self, buffer) -> int:
        if self.closed:
            raise TransportError("Transport is closed")
        if not self.outgoing:
            if self.eof:
                raise TransportError("Connection closed by server")
            return 0
        size = min(len(buffer), len(self.outgoing), self.chunk_size or len(self.outgoing))
        buffer[:size] = self.outgoing[:size]
        del self.outgoing[:size]
        return size

    def close(self) -> None:
        self.closed = True


class FakeIMAPServer(FakeTransport):
    """
    FakeTransport answering like an IMAP server with one or more mailboxes.

    Attributes:
        messages: UID -> (header block, body text) of the selected mailbox.
        uidvalidity: UIDVALIDITY reported on SELECT.
        unseen: UIDs reported by UID SEARCH UNSEEN.
        mailboxes: Names SELECT accepts.
        accept_login: Whether LOGIN succeeds.
    """

    def __init__(
        self,
        messages: dict[int, tuple[str, str]] | None = None,
        *,
        uidvalidity: int = 1000,
        unseen: set[int] | None = None,
        mailboxes: tuple[str, ...] = ("INBOX",),
        accept_login: bool = True,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.messages = dict(messages or {})
        self.uidvalidity = uidvalidity
        self.unseen = set(unseen or ())
        self.mailboxes = mailboxes
        self.accept_login = accept_login

    def reopen(self) -> "FakeIMAPServer":
        """Start a new connection to the same mailbox."""
        self.outgoing = bytearray(GREETING)
        self.received = bytearray()
        self.closed = False
        return self

    @property
    def fetched(self) -> list[int]:
        """UIDs whose header was fetched, in order."""
        uids = []
        for line in self.commands:
            words = line.split()
            if words[1:3] == ["UID", "FETCH"] and "HEADER" in line:
                uids.append(int(words[3]))
        return uids

    def respond(self, tag: str, command: str) -> str | None:
        scripted = super().respond(tag, command)
        if scripted is not None:
            return scripted

        words = command.split()
        name = words[0].upper()

        if name == "LOGIN":
            if self.accept_login:
                return f"{tag} OK LOGIN completed\r\n"
            return f"{tag} NO [AUTHENTICATIONFAILED] Invalid credentials\r\n"

        if name == "SELECT":
            mailbox = command[len("SELECT "):].strip('"')
            if mailbox not in self.mailboxes:
                return f"{tag} NO Mailbox does not exist\r\n"
            return (
                "* FLAGS (\\Answered \\Flagged \\Deleted \\Seen \\Draft)\r\n"
                f"* {len(self.messages)} EXISTS\r\n"
                "* 0 RECENT\r\n"
                f"* OK [UIDVALIDITY {self.uidvalidity}] UIDs valid\r\n"
                f"* OK [UIDNEXT {max(self.messages, default=0) + 1}] Predicted next UID\r\n"
                f"{tag} OK [READ-WRITE] SELECT completed\r\n"
            )

        if name == "UID" and words[1].upper() == "SEARCH":
            if words[2].upper() == "UNSEEN":
                uids = [uid for uid in self.messages if uid in self.unseen]
            else:
                uids = list(self.messages)
            listing = " ".join(str(uid) for uid in uids)
            return f"* SEARCH {listing}".rstrip() + f"\r\n{tag} OK SEARCH completed\r\n"

        if name == "UID" and words[1].upper() == "FETCH":
            uid = int(words[2])
            item = " ".join(words[3:])
            if uid not in self.messages:
                return f"{tag} OK UID FETCH completed\r\n"
            header, body = self.messages[uid]
            data = header if "HEADER" in item.upper() else body
            seq = list(self.messages).index(uid) + 1
            size = len(data.encode("utf-8"))
            return (
                f"* {seq} FETCH (UID {uid} {item} {{{size}}}\r\n"
                f"{data})\r\n"
                f"{tag} OK UID FETCH completed\r\n"
            )

        if name == "LOGOUT":
            return f"* BYE Logging out\r\n{tag} OK LOGOUT completed\r\n"

        return f"{tag} BAD Unknown command\r\n"


def make_header(uid: int) -> str:
    """Header block as a server returns it for HEADER.FIELDS."""
    return (
        f"Date: Mon, 1 Jan 2024 10:00:{uid:02d} +0000\r\n"
        "From: Alice <alice@example.com>\r\n"
        "To: bob@example.com\r\n"
        f"Subject: Message {uid}\r\n"
        f"Message-ID: <{uid}@example.com>\r\n"
        "\r\n"
    )


def expected_header(uid: int) -> str:
    """The normalized header imapcl writes for make_header(uid)."""
    return make_header(uid)[:-2]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def auth_file(temp_dir):
    """An auth file with "key = value" lines."""
    path = temp_dir / "auth.txt"
    path.write_text("username = test@example.com\npassword = secret\n")
    return path


@pytest.fixture
def sample_account(auth_file):
    """Create a sample Account for testing."""
    return Account(
        server="imap.example.com",
        auth_file=str(auth_file),
    )


@pytest.fixture
def sample_messages():
    """Three messages with UIDs 1, 2 and 3."""
    return {
        uid: (make_header(uid), f"Body of message {uid}\r\nSecond line\r\n")
        for uid in (1, 2, 3)
    }


@pytest.fixture
def imap_server(sample_messages):
    """A fake server holding the sample messages in INBOX."""
    return FakeIMAPServer(sample_messages, uidvalidity=1000)


@pytest.fixture
def make_client(sample_account):
    """Factory for an IMAPClient talking to a fake server."""
    def _make(server: FakeTransport, account: Account | None = None) -> IMAPClient:
        def factory(acct):
            if isinstance(server, FakeIMAPServer) and server.closed:
                return server.reopen()
            return server

        return IMAPClient(
            account or sample_account,
            transport_factory=factory,
            response_timeout=5.0,
            max_idle_reads=5,
        )

    return _make
