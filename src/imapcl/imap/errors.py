# =============================================================================
# IMAP Exceptions
# =============================================================================
# Every failure the IMAP layer can report is a subclass of IMAPError, so the
# CLI can catch one type and print a clean message.
#
# Fatal for the whole run:
#   - TransportError / ProtocolTimeout: the connection is unusable
#   - ServerNotReady: bad or missing greeting
#   - AuthenticationFailed: LOGIN rejected or no credentials
#   - MailboxNotFound / MailboxSelectFailed: SELECT failed
#
# Per message (caught at the fetch loop, the run continues):
#   - MessageFetchError: UID FETCH returned NO/BAD or no data
#   - ParseFailure: a well-formed response lacked an expected field
# =============================================================================


class IMAPError(Exception):
    """Base exception for IMAP operations."""
    pass


class TransportError(IMAPError):
    """Raised when connecting, writing or reading fails for good."""
    pass


class ProtocolTimeout(IMAPError):
    """Raised when no tagged completion arrives within the read bound."""
    pass


class ServerNotReady(IMAPError):
    """Raised when the server greeting is absent or not positive."""
    pass


class AuthenticationFailed(IMAPError):
    """Raised when IMAP authentication fails."""
    pass


class MailboxNotFound(IMAPError):
    """Raised when the server answers SELECT with NO."""
    pass


class MailboxSelectFailed(IMAPError):
    """Raised when SELECT succeeds but the response is unusable (or BAD)."""
    pass


class ParseFailure(IMAPError):
    """Raised when an expected field is missing from a response."""
    pass


class MessageFetchError(IMAPError):
    """Raised when a single message cannot be fetched."""

    def __init__(self, uid: int, reason: str) -> None:
        super().__init__(f"Failed to fetch message UID {uid}: {reason}")
        self.uid = uid
        self.reason = reason
