# =============================================================================
# Mailbox Sync State
# =============================================================================
# What a previous run downloaded from one (server, mailbox) pair.
#
# UIDs only mean something together with the UIDVALIDITY they were recorded
# under: when the server changes UIDVALIDITY, every recorded UID is stale
# and the mailbox has to be downloaded again.
# =============================================================================

from dataclasses import dataclass, field


@dataclass
class MailboxSyncState:
    """
    Persisted synchronization record for one mailbox.

    Attributes:
        uidvalidity: UIDVALIDITY the UIDs were recorded under.
        uids: UIDs already downloaded.
        headers_only: True if the run that wrote this record saved headers
                      only, False if it saved full messages.
    """
    uidvalidity: int
    uids: set[int] = field(default_factory=set)
    headers_only: bool = False

    def is_compatible(self, other: "MailboxSyncState") -> bool:
        """True if both records were taken under the same epoch and mode."""
        return (
            self.uidvalidity == other.uidvalidity
            and self.headers_only == other.headers_only
        )

    def merged_with(self, other: "MailboxSyncState") -> "MailboxSyncState":
        """
        Combine `other` (older) into this record.

        Compatible records are unioned. Otherwise this record replaces the
        other one wholesale.
        """
        if not self.is_compatible(other):
            return MailboxSyncState(self.uidvalidity, set(self.uids), self.headers_only)
        return MailboxSyncState(
            self.uidvalidity,
            self.uids | other.uids,
            self.headers_only,
        )
