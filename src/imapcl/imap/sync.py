# =============================================================================
# IMAP Sync Manager
# =============================================================================
# Decides which messages a run must download and drives the download.
#
# Sync strategy (first matching rule wins):
#   1. No stored state for (server, mailbox): download everything
#   2. Stored headers-only flag differs from this run's mode: download
#      everything (stored files are not what is being asked for now)
#   3. Stored UIDVALIDITY differs from the server's: download everything
#      (the server renumbered the mailbox; stored UIDs are meaningless)
#   4. Otherwise: download the server UIDs not in the stored set
#
# Key concepts:
#   - UIDVALIDITY: If this changes, all cached UIDs are invalid
#   - Under rule 4 nothing already recorded is fetched again
#   - A message that fails to download is not recorded, so the next run
#     retries it
# =============================================================================

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto

from imapcl.core import Account, MailboxSyncState
from imapcl.imap.client import IMAPClient
from imapcl.imap.credentials import get_credentials
from imapcl.imap.errors import MessageFetchError, ParseFailure
from imapcl.storage import ArtifactStore, PersistenceError, StateStore

logger = logging.getLogger(__name__)


class SyncReason(Enum):
    """Why a plan contains the UIDs it contains."""
    FIRST_SYNC = auto()             # No stored state
    MODE_CHANGED = auto()           # Headers-only flag differs
    UIDVALIDITY_CHANGED = auto()    # Server renumbered the mailbox
    INCREMENTAL = auto()            # Only UIDs not seen before

    @property
    def is_full(self) -> bool:
        return self is not SyncReason.INCREMENTAL


@dataclass
class SyncPlan:
    """
    UIDs to download and the rule that selected them.

    Attributes:
        reason: Rule that produced the plan.
        uids: UIDs to fetch, in server order.
        carried: Stored UIDs still valid for this run (empty for full syncs).
    """
    reason: SyncReason
    uids: list[int]
    carried: set[int] = field(default_factory=set)


def plan_fetch(
    server_uids: Iterable[int],
    uidvalidity: int,
    headers_only: bool,
    prior: MailboxSyncState | None,
) -> SyncPlan:
    """
    Work out which UIDs must be downloaded.

    Args:
        server_uids: UIDs the server reports, in its order.
        uidvalidity: The mailbox's current UIDVALIDITY.
        headers_only: Whether this run saves headers only.
        prior: State stored by the previous run, if any.

    Returns:
        A SyncPlan whose uids keep the server's order.
    """
    server_uids = list(server_uids)

    if prior is None:
        return SyncPlan(SyncReason.FIRST_SYNC, server_uids)
    if prior.headers_only != headers_only:
        return SyncPlan(SyncReason.MODE_CHANGED, server_uids)
    if prior.uidvalidity != uidvalidity:
        return SyncPlan(SyncReason.UIDVALIDITY_CHANGED, server_uids)

    missing = [uid for uid in server_uids if uid not in prior.uids]
    return SyncPlan(SyncReason.INCREMENTAL, missing, carried=set(prior.uids))


class SyncStatus(Enum):
    """Current status of a sync operation."""
    IDLE = auto()           # Not syncing
    CONNECTING = auto()     # Connecting and logging in
    SELECTING = auto()      # Selecting mailbox and searching
    SYNCING = auto()        # Downloading messages
    COMPLETE = auto()       # Sync completed
    ERROR = auto()          # Sync failed


@dataclass
class SyncProgress:
    """
    Progress information for a sync operation.

    Attributes:
        status: Current sync status.
        mailbox: Mailbox being synced.
        total_messages: Messages planned for download.
        synced_messages: Messages handled so far (saved or failed).
        error: Error message if status is ERROR.
    """
    status: SyncStatus = SyncStatus.IDLE
    mailbox: str | None = None
    total_messages: int = 0
    synced_messages: int = 0
    error: str | None = None

    @property
    def percent_complete(self) -> float:
        """Returns completion percentage (0.0 - 100.0)."""
        if self.total_messages == 0:
            return 0.0
        return (self.synced_messages / self.total_messages) * 100.0


# Type alias for progress callbacks
ProgressCallback = Callable[[SyncProgress], None]


@dataclass
class SyncResult:
    """
    Result of syncing one mailbox.

    Attributes:
        mailbox: Mailbox that was synced.
        new_only: Whether only unseen messages were considered.
        server_messages: UIDs the server reported.
        reason: Rule that selected the downloads (None if nothing to plan).
        downloaded: UIDs saved successfully.
        failed: UIDs that could not be fetched or saved.
        errors: Error messages for failed UIDs.
        duration_seconds: Time taken.
    """
    mailbox: str
    new_only: bool = False
    server_messages: int = 0
    reason: SyncReason | None = None
    downloaded: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        """One-line, user-facing outcome."""
        if self.server_messages == 0:
            prefix = "No new messages found" if self.new_only else "No messages found"
            return f"{prefix} in the mailbox: {self.mailbox}"
        if not self.downloaded and not self.failed:
            return f"Mailbox {self.mailbox} is up to date."

        count = len(self.downloaded)
        label = "new message" if self.new_only else "message"
        if count != 1:
            label += "s"
        return f"Downloaded {count} {label} from mailbox {self.mailbox}"


class SyncManager:
    """
    Downloads the messages of one mailbox that earlier runs have not saved.

    Usage:
        >>> sync = SyncManager(client, StateStore(out), ArtifactStore(out), account)
        >>> result = sync.run()
        >>> print(result.summary())

    Attributes:
        client: IMAP client for server communication.
        store: Sync record persistence.
        artifacts: Where downloaded messages are written.
        account: Account being synced.
        headers_only: Save canonical headers only.
        new_only: Consider only unseen messages.
    """

    def __init__(
        self,
        client: IMAPClient,
        store: StateStore,
        artifacts: ArtifactStore,
        account: Account,
        *,
        headers_only: bool = False,
        new_only: bool = False,
    ) -> None:
        self.client = client
        self.store = store
        self.artifacts = artifacts
        self.account = account
        self.headers_only = headers_only
        self.new_only = new_only
        self._progress = SyncProgress()

    def _report_progress(
        self,
        callback: ProgressCallback | None,
        **updates,
    ) -> None:
        """
        Update progress and notify callback.

        Args:
            callback: Optional callback to notify.
            **updates: Fields to update in progress.
        """
        for key, value in updates.items():
            if hasattr(self._progress, key):
                setattr(self._progress, key, value)

        if callback:
            callback(self._progress)

    def run(
        self,
        mailbox: str | None = None,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> SyncResult:
        """
        Connect, log in, sync one mailbox and log out.

        This is the main entry point for a run. Logout and teardown happen
        on every exit path; connection and authentication errors propagate.

        Args:
            mailbox: Mailbox to sync (defaults to the account's).
            progress_callback: Function to call with progress updates.

        Returns:
            SyncResult for the mailbox.
        """
        mailbox = mailbox or self.account.mailbox
        self._progress = SyncProgress(status=SyncStatus.CONNECTING, mailbox=mailbox)
        self._report_progress(progress_callback)

        try:
            self.client.connect()
            username, password = get_credentials(self.account)
            self.client.login(username, password)
            logger.info(f"Logged in to {self.account.server} as {username}")

            result = self.sync_mailbox(mailbox, progress_callback=progress_callback)
        except Exception as e:
            self._report_progress(progress_callback, status=SyncStatus.ERROR, error=str(e))
            raise
        finally:
            self.client.disconnect()

        self._report_progress(progress_callback, status=SyncStatus.COMPLETE)
        return result

    def sync_mailbox(
        self,
        mailbox: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> SyncResult:
        """
        Sync a single mailbox over an authenticated client.

        Args:
            mailbox: Mailbox to sync.
            progress_callback: Function to call with progress updates.

        Returns:
            SyncResult for this mailbox.
        """
        start_time = datetime.now()
        result = SyncResult(mailbox=mailbox, new_only=self.new_only)
        server = self.account.server

        self._report_progress(progress_callback, status=SyncStatus.SELECTING, mailbox=mailbox)

        uidvalidity = self.client.select_folder(mailbox)
        server_uids = self.client.search_uids(unseen_only=self.new_only)
        result.server_messages = len(server_uids)

        if not server_uids:
            logger.info(f"No messages to consider in {mailbox}")
            result.duration_seconds = (datetime.now() - start_time).total_seconds()
            return result

        prior = self._load_state(server, mailbox)
        plan = plan_fetch(server_uids, uidvalidity, self.headers_only, prior)
        result.reason = plan.reason

        if plan.reason is SyncReason.UIDVALIDITY_CHANGED:
            logger.warning(
                f"UIDVALIDITY changed for {mailbox}: "
                f"{prior.uidvalidity} -> {uidvalidity}"
            )
        elif plan.reason is SyncReason.MODE_CHANGED:
            logger.info(f"Headers-only mode changed for {mailbox}, downloading everything")

        logger.debug(
            f"Sync {mailbox} ({plan.reason.name}): "
            f"server={len(server_uids)}, stored={len(plan.carried)}, to fetch={len(plan.uids)}"
        )

        recorded = set(plan.carried)

        # Whatever was saved gets recorded, even if the connection dies mid-run
        try:
            if plan.uids:
                self.store.ensure_mailbox_dir(server, mailbox)
                if prior is None:
                    self._save_state(server, mailbox, uidvalidity, recorded)

                self._report_progress(
                    progress_callback,
                    status=SyncStatus.SYNCING,
                    total_messages=len(plan.uids),
                    synced_messages=0,
                )
                self._download(plan.uids, result, recorded, progress_callback)
            else:
                logger.info(f"Mailbox {mailbox} is up to date")
        finally:
            self._save_state(server, mailbox, uidvalidity, recorded)

        if result.failed:
            logger.warning(f"Sync of {mailbox}: {len(result.failed)} messages failed")
        logger.info(f"Sync of {mailbox} complete: {len(result.downloaded)} downloaded")

        result.duration_seconds = (datetime.now() - start_time).total_seconds()
        return result

    def _download(
        self,
        uids: list[int],
        result: SyncResult,
        recorded: set[int],
        progress_callback: ProgressCallback | None,
    ) -> None:
        """Fetch and save each UID; failures are recorded, not raised."""
        server = self.account.server

        for i, uid in enumerate(uids, start=1):
            try:
                message = self.client.fetch_message(uid, headers_only=self.headers_only)
                self.artifacts.save(server, message)
            except (MessageFetchError, ParseFailure, PersistenceError) as e:
                error_msg = f"Failed to fetch or save message with UID {uid}: {e}"
                logger.error(error_msg)
                result.failed.append(uid)
                result.errors.append(error_msg)
            else:
                recorded.add(uid)
                result.downloaded.append(uid)

            self._report_progress(progress_callback, synced_messages=i)

    def _load_state(self, server: str, mailbox: str) -> MailboxSyncState | None:
        try:
            return self.store.load(server, mailbox)
        except PersistenceError as e:
            logger.error(f"Ignoring unreadable sync state, downloading everything: {e}")
            return None

    def _save_state(self, server: str, mailbox: str, uidvalidity: int, uids: set[int]) -> None:
        state = MailboxSyncState(
            uidvalidity=uidvalidity,
            uids=set(uids),
            headers_only=self.headers_only,
        )
        try:
            self.store.save(server, mailbox, state)
        except PersistenceError as e:
            logger.error(f"Could not save sync state for {mailbox}: {e}")
