# =============================================================================
# imapcl Core Module
# =============================================================================
# Core domain models for imapcl. These are plain dataclasses with no I/O,
# so they can be imported anywhere without circular imports.
#
#   - Account: where to connect and as whom
#   - MailboxSyncState: what a previous run already downloaded
#   - Message: one fetched message, ready to be written to disk
# =============================================================================

from imapcl.core.account import Account
from imapcl.core.mailbox import MailboxSyncState
from imapcl.core.message import Message

__all__ = [
    "Account",
    "MailboxSyncState",
    "Message",
]
