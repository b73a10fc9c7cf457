# =============================================================================
# Sync State Store
# =============================================================================
# Reads and writes the per-mailbox sync record. The record is three lines:
#
#   HeadersOnly: true
#   UIDVALIDITY: 3857529045
#   UIDs: 1 2 5 8
#
# A missing record is not an error (first run). An unreadable, malformed or
# unwritable one is, and raises PersistenceError.
#
# Writes go to a temporary file in the same directory which then replaces
# the old record, so a crash never leaves a half-written record behind.
# =============================================================================

import contextlib
import logging
import os
import tempfile
from pathlib import Path

from imapcl.core import MailboxSyncState

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.txt"


class StateStore:
    """
    Per-(server, mailbox) sync records under an output directory.

    Usage:
        >>> store = StateStore(Path("~/mail").expanduser())
        >>> state = store.load("imap.example.com", "INBOX")
        >>> store.save("imap.example.com", "INBOX", new_state)

    Attributes:
        out_dir: Base output directory.
    """

    def __init__(self, out_dir: str | Path) -> None:
        self.out_dir = Path(out_dir)

    def mailbox_dir(self, server: str, mailbox: str) -> Path:
        return self.out_dir / server / mailbox

    def path_for(self, server: str, mailbox: str) -> Path:
        return self.mailbox_dir(server, mailbox) / STATE_FILENAME

    def ensure_mailbox_dir(self, server: str, mailbox: str) -> Path:
        """
        Create the mailbox directory if needed.

        Raises:
            PersistenceError: If the directory cannot be created.
        """
        path = self.mailbox_dir(server, mailbox)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not create directory {path}: {e}") from e
        return path

    def load(self, server: str, mailbox: str) -> MailboxSyncState | None:
        """
        Load the record for a mailbox.

        Returns:
            The stored state, or None if no record exists yet.

        Raises:
            PersistenceError: If the record exists but cannot be read or parsed.
        """
        path = self.path_for(server, mailbox)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No sync state at {path}")
            return None
        except OSError as e:
            raise PersistenceError(f"Could not read {path}: {e}") from e

        state = parse_state(text, source=str(path))
        logger.debug(
            f"Loaded sync state for {server}/{mailbox}: "
            f"UIDVALIDITY={state.uidvalidity}, {len(state.uids)} UIDs, "
            f"headers_only={state.headers_only}"
        )
        return state

    def save(self, server: str, mailbox: str, state: MailboxSyncState) -> MailboxSyncState:
        """
        Persist a record, merging it with the one already on disk.

        UIDs are unioned with the stored record when both share UIDVALIDITY
        and mode; otherwise the stored record is replaced.

        Returns:
            The state that was written.

        Raises:
            PersistenceError: If the record cannot be written.
        """
        try:
            previous = self.load(server, mailbox)
        except PersistenceError as e:
            logger.warning(f"Overwriting unreadable sync state: {e}")
            previous = None

        merged = state.merged_with(previous) if previous else state
        if previous and not state.is_compatible(previous):
            logger.info(f"Replacing sync state for {server}/{mailbox} (UIDVALIDITY or mode changed)")

        path = self.path_for(server, mailbox)
        self.ensure_mailbox_dir(server, mailbox)
        _atomic_write(path, format_state(merged))
        logger.debug(f"Saved sync state for {server}/{mailbox}: {len(merged.uids)} UIDs")
        return merged


def format_state(state: MailboxSyncState) -> str:
    """Render a record in its three-line on-disk form."""
    uids = " ".join(str(uid) for uid in sorted(state.uids))
    return (
        f"HeadersOnly: {'true' if state.headers_only else 'false'}\n"
        f"UIDVALIDITY: {state.uidvalidity}\n"
        f"UIDs: {uids}\n"
    )


def parse_state(text: str, source: str = "<state>") -> MailboxSyncState:
    """
    Parse the three-line on-disk form.

    Raises:
        PersistenceError: If a field is missing or malformed.
    """
    fields: dict[str, str] = {}
    for line in text.splitlines():
        key, colon, value = line.partition(":")
        if colon:
            fields[key.strip().lower()] = value.strip()

    try:
        flag = fields["headersonly"].lower()
        if flag not in ("true", "false"):
            raise ValueError(f"bad HeadersOnly value {flag!r}")
        uidvalidity = int(fields["uidvalidity"])
        uids = {int(uid) for uid in fields.get("uids", "").split()}
    except KeyError as e:
        raise PersistenceError(f"Malformed sync state {source}: missing {e.args[0]}") from e
    except ValueError as e:
        raise PersistenceError(f"Malformed sync state {source}: {e}") from e

    return MailboxSyncState(uidvalidity=uidvalidity, uids=uids, headers_only=flag == "true")


def _atomic_write(path: Path, content: str) -> None:
    try:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".state-", suffix=".tmp")
    except OSError as e:
        raise PersistenceError(f"Could not write {path}: {e}") from e
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise PersistenceError(f"Could not write {path}: {e}") from e


# =============================================================================
# Exceptions
# =============================================================================

class PersistenceError(Exception):
    """Raised when sync state or a message cannot be read from or written to disk."""
    pass
