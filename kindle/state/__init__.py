"""
Completion markers for one-time initialization.

Tracks which one-time steps have finished, using sentinel files or SQLite.
"""

from kindle.state.guard import OnceGuard
from kindle.state.store import (
    FileMarkerStore,
    MarkerRecord,
    MarkerStore,
    SqliteMarkerStore,
)

__all__ = [
    "OnceGuard",
    "MarkerStore",
    "MarkerRecord",
    "FileMarkerStore",
    "SqliteMarkerStore",
]
