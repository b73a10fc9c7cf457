# =============================================================================
# Message Artifacts
# =============================================================================
# Writes downloaded messages as .eml files next to the mailbox's sync record:
#
#   <out_dir>/<server>/<mailbox>/message_uid_<uid>.eml
# =============================================================================

import logging
from pathlib import Path

from imapcl.core import Message
from imapcl.storage.state import PersistenceError

logger = logging.getLogger(__name__)


class ArtifactStore:
    """One file per message under <out_dir>/<server>/<mailbox>/."""

    def __init__(self, out_dir: str | Path) -> None:
        self.out_dir = Path(out_dir)

    def path_for(self, server: str, message: Message) -> Path:
        return self.out_dir / server / message.mailbox / message.filename

    def save(self, server: str, message: Message) -> Path:
        """
        Write a message, replacing any earlier download of the same UID.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        path = self.path_for(server, message)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(message.render())
        except OSError as e:
            raise PersistenceError(f"Could not save message {message.uid} to {path}: {e}") from e

        logger.debug(f"Saved UID {message.uid} to {path}")
        return path
