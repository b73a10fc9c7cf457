# =============================================================================
# IMAP Client
# =============================================================================
# Provides the IMAP commands imapcl needs on top of the protocol engine.
#
# Key responsibilities:
#   - Connection management (transport, greeting, logout, teardown)
#   - Authentication (LOGIN)
#   - Mailbox selection (SELECT, UIDVALIDITY)
#   - Message discovery and retrieval (UID SEARCH, UID FETCH)
#
# Design notes:
#   - Blocking and strictly sequential: one command in flight at a time
#   - The same code runs over plain and TLS transports
#   - NO/BAD completions are turned into the matching IMAPError here
# =============================================================================

import logging
import ssl
from collections.abc import Callable
from dataclasses import dataclass

from imapcl.core import Account, Message
from imapcl.imap.errors import (
    AuthenticationFailed,
    IMAPError,
    MailboxNotFound,
    MailboxSelectFailed,
    MessageFetchError,
    ParseFailure,
    TransportError,
)
from imapcl.imap.parser import (
    CANONICAL_HEADERS,
    is_fetch_payload,
    normalize_message_part,
    parse_search_uids,
    parse_uidvalidity,
)
from imapcl.imap.protocol import ProtocolEngine, TaggedResponse
from imapcl.imap.transport import Transport, open_transport

# Set up logging for this module
logger = logging.getLogger(__name__)

HEADER_ITEM = f"BODY[HEADER.FIELDS ({' '.join(CANONICAL_HEADERS).upper()})]"
BODY_ITEM = "BODY[1]"

TransportFactory = Callable[[Account], Transport]


def _quote_folder_name(name: str) -> str:
    """
    Quote an IMAP mailbox name if it contains special characters.

    Mailbox names with spaces or special characters must be quoted.
    This wraps the name in double quotes and escapes any internal quotes
    or backslashes.

    Args:
        name: The mailbox name to quote.

    Returns:
        Properly quoted mailbox name for IMAP commands.
    """
    if not name or any(c in name for c in ' "\\(){}[]%*'):
        escaped = name.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'
    return name


def _quote_string(value: str) -> str:
    """Always-quoted IMAP string, used for LOGIN arguments."""
    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


@dataclass
class ConnectionState:
    """
    Tracks the current state of an IMAP connection.

    Attributes:
        connected: Whether the server greeted us.
        authenticated: Whether we've successfully logged in.
        selected_folder: Currently selected mailbox, if any.
        uidvalidity: UIDVALIDITY of the selected mailbox.
        greeting: The server's greeting line.
    """
    connected: bool = False
    authenticated: bool = False
    selected_folder: str | None = None
    uidvalidity: int | None = None
    greeting: str = ""


class IMAPClient:
    """
    Blocking IMAP client for imapcl.

    Usage:
        >>> with IMAPClient(account, ssl_context=context) as client:
        ...     client.login(username, password)
        ...     uidvalidity = client.select_folder("INBOX")
        ...     uids = client.search_uids()
        ...     message = client.fetch_message(uids[0])

    Attributes:
        account: The server this client talks to.
        state: Current connection state.
    """

    def __init__(
        self,
        account: Account,
        *,
        ssl_context: ssl.SSLContext | None = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 5.0,
        response_timeout: float = 60.0,
        max_idle_reads: int = 20,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        """
        Initialize the IMAP client.

        Args:
            account: Account configuration with server details.
            ssl_context: TLS context for encrypted connections.
            connect_timeout: Seconds allowed for connect and TLS handshake.
            read_timeout: Seconds a single socket read may block.
            response_timeout: Seconds allowed for one complete response.
            max_idle_reads: Consecutive empty reads before giving up.
            transport_factory: Builds the transport; defaults to a real
                               socket connection to the account's server.
        """
        self.account = account
        self.state = ConnectionState()
        self.response_timeout = response_timeout
        self.max_idle_reads = max_idle_reads
        self._transport_factory = transport_factory or (
            lambda acct: open_transport(
                acct,
                ssl_context=ssl_context,
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
            )
        )
        self._transport: Transport | None = None
        self._engine: ProtocolEngine | None = None

    @property
    def engine(self) -> ProtocolEngine:
        if self._engine is None:
            raise TransportError("Not connected to IMAP server")
        return self._engine

    # =========================================================================
    # Connection Management
    # =========================================================================

    def connect(self) -> str:
        """
        Open the transport and read the server greeting.

        Returns:
            The greeting line.

        Raises:
            TransportError: If unable to connect to the server.
            ServerNotReady: If the greeting is missing or not OK.
        """
        logger.info(f"Connecting to {self.account}")

        self._transport = self._transport_factory(self.account)
        self._engine = ProtocolEngine(
            self._transport,
            timeout=self.response_timeout,
            max_idle_reads=self.max_idle_reads,
        )

        try:
            greeting = self._engine.read_greeting()
        except IMAPError:
            self.close()
            raise

        self.state.connected = True
        self.state.greeting = greeting
        logger.debug(f"Server greeting: {greeting}")
        return greeting

    def login(self, username: str, password: str) -> None:
        """
        Authenticate with LOGIN.

        Raises:
            AuthenticationFailed: If the server does not answer OK.
        """
        logger.debug(f"Authenticating as {username}")

        response = self._execute("LOGIN", f"{_quote_string(username)} {_quote_string(password)}")
        if not response.ok:
            raise AuthenticationFailed(
                f"Authentication of user {username} failed: {response.message or response.status}"
            )

        self.state.authenticated = True
        logger.debug("Authentication successful")

    def logout(self) -> bool:
        """
        Send LOGOUT, best effort.

        Returns:
            True if the server acknowledged the logout.
        """
        if self._engine is None or not self.state.connected:
            return False

        try:
            logger.debug("Sending LOGOUT")
            response = self._execute("LOGOUT")
        except IMAPError as e:
            logger.warning(f"Error during logout: {e}")
            return False

        if not response.ok:
            logger.warning(f"Logout rejected: {response}")
        return response.ok

    def close(self) -> None:
        """Close the transport and forget all session state."""
        if self._transport is not None:
            self._transport.close()
        self._transport = None
        self._engine = None
        self.state = ConnectionState()

    def disconnect(self) -> None:
        """
        Gracefully disconnect from the IMAP server.

        Sends LOGOUT and closes the connection.
        """
        try:
            self.logout()
        finally:
            self.close()

    def __enter__(self) -> "IMAPClient":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.disconnect()

    # =========================================================================
    # Mailbox Operations
    # =========================================================================

    def select_folder(self, folder_name: str) -> int:
        """
        Select a mailbox for subsequent operations.

        Args:
            folder_name: Name of the mailbox to select.

        Returns:
            The mailbox's UIDVALIDITY.

        Raises:
            MailboxNotFound: If the server answers NO.
            MailboxSelectFailed: On BAD, or if UIDVALIDITY is missing.
        """
        logger.debug(f"Selecting mailbox: {folder_name}")

        response = self._execute("SELECT", _quote_folder_name(folder_name))

        if response.status == "NO":
            raise MailboxNotFound(f"Unable to select mailbox {folder_name}: {response.message}")
        if not response.ok:
            raise MailboxSelectFailed(f"Failed to select mailbox {folder_name}: {response.message}")

        uidvalidity = parse_uidvalidity(response.text)
        if uidvalidity is None:
            raise MailboxSelectFailed(
                f"UIDVALIDITY not found in the SELECT response for mailbox {folder_name}"
            )

        self.state.selected_folder = folder_name
        self.state.uidvalidity = uidvalidity

        logger.debug(f"Selected mailbox: {folder_name}, UIDVALIDITY={uidvalidity}")
        return uidvalidity

    def search_uids(self, unseen_only: bool = False) -> list[int]:
        """
        Get the UIDs of all (or all unseen) messages in the selected mailbox.

        Returns:
            UIDs in the order the server reported them. Empty if the server
            sent no "* SEARCH" line.

        Raises:
            IMAPError: If the server rejects the search.
        """
        criteria = "UNSEEN" if unseen_only else "ALL"
        response = self._execute("UID SEARCH", criteria)

        if not response.ok:
            raise IMAPError(f"UID SEARCH {criteria} failed: {response.message}")

        parsed = parse_search_uids(response.text)
        if not parsed.found:
            logger.warning(f"No '* SEARCH' line in the UID SEARCH {criteria} response")

        logger.debug(f"Found {len(parsed.uids)} UIDs ({criteria})")
        return parsed.uids

    # =========================================================================
    # Message Fetching
    # =========================================================================

    def fetch_part(self, uid: int, item: str) -> bytes:
        """
        Run UID FETCH for one data item of one message.

        Returns:
            The raw response, untagged lines through the completion line.

        Raises:
            MessageFetchError: If the server refuses or returns no data.
        """
        response = self._execute("UID FETCH", f"{uid} {item}")

        if not response.ok:
            raise MessageFetchError(uid, f"{response.status} {response.message}".strip())

        if not is_fetch_payload(response.text):
            raise MessageFetchError(uid, "server returned no data")
        return response.raw

    def fetch_message(self, uid: int, *, headers_only: bool = False) -> Message:
        """
        Fetch a message's canonical headers and, optionally, its first body part.

        Args:
            uid: UID of the message.
            headers_only: If True, skip the body.

        Returns:
            The fetched Message.
        """
        mailbox = self.state.selected_folder or self.account.mailbox

        header = self._part_content(uid, self.fetch_part(uid, HEADER_ITEM), is_header=True)
        if not header:
            logger.warning(f"Message UID {uid} has none of the expected header fields")

        body = None
        if not headers_only:
            body = self._part_content(uid, self.fetch_part(uid, BODY_ITEM), is_header=False)

        return Message(uid=uid, mailbox=mailbox, header=header, body=body)

    def _part_content(self, uid: int, raw: bytes, is_header: bool) -> str:
        """
        Raises:
            ParseFailure: If no FETCH line carries the requested item.
        """
        content = normalize_message_part(raw, is_header)
        if content is None:
            raise ParseFailure(f"FETCH response for message UID {uid} carries no data")
        return content

    # -------------------------------------------------------------------------

    def _execute(self, verb: str, args: str = "") -> TaggedResponse:
        return self.engine.execute(verb, args)
