"""Local replica of the remote toggle dataset.

Provides the in-memory store with its backup file and the poll loop that
keeps it current.
"""

from .store import BackingStore
from .synchronizer import Repository, SyncResult, SyncState
from .toggles import ToggleDefinition, validate_toggle

__all__ = [
    "BackingStore",
    "Repository",
    "SyncResult",
    "SyncState",
    "ToggleDefinition",
    "validate_toggle",
]
