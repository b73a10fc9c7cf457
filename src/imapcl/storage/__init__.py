# =============================================================================
# Storage Module
# =============================================================================
# Everything imapcl keeps on disk, under the user's output directory:
#
#   <out_dir>/<server>/<mailbox>/state.txt              sync record
#   <out_dir>/<server>/<mailbox>/message_uid_<uid>.eml  downloaded messages
#
# Provides:
#   - StateStore: load/save the per-mailbox sync record
#   - ArtifactStore: write downloaded messages
# =============================================================================

from imapcl.storage.artifacts import ArtifactStore
from imapcl.storage.state import PersistenceError, StateStore

__all__ = ["ArtifactStore", "PersistenceError", "StateStore"]
