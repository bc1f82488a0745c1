"""
OnceGuard - run a one-time initialization step exactly once.

The only rule that matters: the marker is written after the guarded action
has fully succeeded, never before and never on failure. A crash halfway
through leaves no marker, so the next start redoes the whole action.
"""

from typing import Callable, List, Optional, TypeVar

from kindle.logging import get_logger
from kindle.state.store import MarkerRecord, MarkerStore

logger = get_logger(__name__)

T = TypeVar("T")


class OnceGuard:
    """
    Tracks completion of one-time steps in a MarkerStore.

    Example:
        guard = OnceGuard(FileMarkerStore("/var/lib/mysql"))
        if not guard.is_done("mariadb-initialized"):
            initialize()
            guard.mark_done("mariadb-initialized")
    """

    def __init__(self, store: MarkerStore):
        self.store = store

    def is_done(self, marker_id: str) -> bool:
        return self.store.get(marker_id) is not None

    def mark_done(self, marker_id: str) -> MarkerRecord:
        """Persist completion. Call only after the guarded action succeeded."""
        record = MarkerRecord.now(marker_id)
        self.store.put(record)
        logger.debug("Marker %s written", marker_id)
        return record

    def reset(self, marker_id: str) -> bool:
        """Forget a marker (operator action). Returns False if absent."""
        removed = self.store.delete(marker_id)
        if removed:
            logger.info("Marker %s reset", marker_id)
        return removed

    def records(self) -> List[MarkerRecord]:
        return self.store.list()

    def run_once(self, marker_id: str, action: Callable[[], T]) -> Optional[T]:
        """
        Run action unless marker_id is done, then mark it.

        Returns:
            The action's return value, or None when skipped

        Any exception from action propagates and no marker is written.
        """
        if self.is_done(marker_id):
            logger.debug("Marker %s present, skipping", marker_id)
            return None

        result = action()
        self.mark_done(marker_id)
        return result
