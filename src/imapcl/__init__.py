# =============================================================================
# imapcl: an IMAP4rev1 mailbox downloader
# =============================================================================
#
# imapcl connects to an IMAP server (plain or TLS), logs in, selects one
# mailbox and downloads the messages that earlier runs have not saved yet.
#
# Features:
#   - Plain IMAP and IMAP over TLS with custom CA certificates
#   - Incremental downloads tracked per server and mailbox (UIDVALIDITY aware)
#   - Headers-only mode and unseen-only mode
#   - Credentials from an auth file or the system keyring
#   - XDG Base Directory compliant configuration
#
# =============================================================================

__version__ = "0.1.0"
__app_name__ = "imapcl"

# Main entry point - this is what gets called by the 'imapcl' command
from imapcl.cli import main

__all__ = ["main", "__version__", "__app_name__"]
