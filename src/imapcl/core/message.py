# =============================================================================
# Message Model
# =============================================================================
# One downloaded message: its UID, the normalized header block and, unless
# the run is headers-only, the text of its first body part.
# =============================================================================

from dataclasses import dataclass


@dataclass
class Message:
    """
    A fetched message.

    Attributes:
        uid: IMAP UID within the mailbox.
        mailbox: Mailbox the message was fetched from.
        header: Canonical header block (Date, From, To, Subject, Message-Id),
                CRLF line endings.
        body: Body part text, or None for headers-only downloads.
    """
    uid: int
    mailbox: str
    header: str
    body: str | None = None

    @property
    def headers_only(self) -> bool:
        return self.body is None

    @property
    def filename(self) -> str:
        return f"message_uid_{self.uid}.eml"

    def render(self) -> str:
        """Return the file content: header, blank line, body."""
        if self.body is None:
            return self.header
        return f"{self.header}\r\n{self.body}"
