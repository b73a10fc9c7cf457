# =============================================================================
# Account Model
# =============================================================================
# Connection details for one IMAP server.
#
# IMPORTANT: Passwords are NOT stored here. They come either from an auth
# file or from the system keyring at runtime (see imapcl.imap.credentials).
# =============================================================================

from dataclasses import dataclass

IMAP_PORT = 143
IMAPS_PORT = 993


@dataclass
class Account:
    """
    An IMAP server to download from.

    Attributes:
        name: Identifier for this account (config key, keyring lookups).
              Defaults to the server name.
        server: Hostname or IP address of the IMAP server.
        port: Server port. 0 picks the IANA default for the security mode:
              - 143 for plain IMAP
              - 993 for IMAP over TLS
        use_tls: Connect with TLS (imaps).
        cert_file: CA certificate file used to verify the server.
        cert_dir: Directory of CA certificates used to verify the server.
        username: Login name. Filled from the auth file when one is used.
        auth_file: Path to a "username = ... / password = ..." file.
        mailbox: Mailbox to download from.

    Example:
        >>> account = Account(server="imap.example.com", use_tls=True)
        >>> account.port
        993
    """

    server: str
    name: str = ""
    port: int = 0
    use_tls: bool = False
    cert_file: str | None = None
    cert_dir: str | None = None
    username: str = ""
    auth_file: str | None = None
    mailbox: str = "INBOX"

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.server
        if not self.port:
            self.port = IMAPS_PORT if self.use_tls else IMAP_PORT

    @property
    def keyring_service(self) -> str:
        """
        Service name used for keyring password storage:
            keyring get imapcl:<name> <username>
        """
        return f"imapcl:{self.name}"

    def __str__(self) -> str:
        scheme = "imaps" if self.use_tls else "imap"
        return f"{scheme}://{self.server}:{self.port}"
