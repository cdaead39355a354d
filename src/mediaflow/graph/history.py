"""Undo/redo history over a GraphStore."""
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Optional, Tuple

from mediaflow.config import get_settings
from mediaflow.graph.models import GraphSnapshot
from mediaflow.graph.store import ChangeAction, GraphChange, GraphStore
from mediaflow.observability import get_logger

logger = get_logger(__name__)


@dataclass
class HistoryEntry:
    """Snapshot taken before an edit, plus what is needed to coalesce."""

    snapshot: GraphSnapshot
    coalesce_key: Optional[Tuple[Any, ...]]
    recorded_at: float


class HistoryManager:
    """
    Records graph snapshots for undo/redo.

    Every non-transient store mutation pushes the pre-mutation snapshot onto
    the undo stack and clears the redo stack. Repeated edits of the same
    field (slider drags, node drags) inside the coalesce window share one
    entry. The undo stack is bounded; the oldest entries are evicted.
    """

    def __init__(
        self,
        store: GraphStore,
        limit: int | None = None,
        coalesce_window_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Attach a history manager to a store.

        Args:
            store: Graph store to record
            limit: Maximum undo depth (defaults to settings.history_limit)
            coalesce_window_s: Coalesce window in seconds
            clock: Monotonic clock, injectable for tests
        """
        settings = get_settings()
        self._store = store
        self._limit = settings.history_limit if limit is None else limit
        self._window = (
            settings.history_coalesce_window_s
            if coalesce_window_s is None
            else coalesce_window_s
        )
        self._clock = clock
        self._undo: Deque[HistoryEntry] = deque(maxlen=self._limit)
        self._redo: Deque[GraphSnapshot] = deque(maxlen=self._limit)
        self._unsubscribe = store.subscribe(self._on_change)

    def _on_change(self, change: GraphChange) -> None:
        if change.action == ChangeAction.RESTORE or change.transient:
            return

        now = self._clock()
        key = change.coalesce_key
        last = self._undo[-1] if self._undo else None
        self._redo.clear()

        if (
            last is not None
            and key is not None
            and last.coalesce_key == key
            and now - last.recorded_at <= self._window
        ):
            # Same edit still in progress: keep the older snapshot
            last.recorded_at = now
            return

        self._undo.append(
            HistoryEntry(snapshot=change.previous, coalesce_key=key, recorded_at=now)
        )

    def can_undo(self) -> bool:
        return bool(self._undo)

    def can_redo(self) -> bool:
        return bool(self._redo)

    def undo(self) -> bool:
        """Restore the previous snapshot. Returns False when there is nothing to undo."""
        if not self._undo:
            return False
        entry = self._undo.pop()
        self._redo.append(self._store.snapshot())
        self._store.restore(entry.snapshot)
        logger.debug(f"Undo: {len(self._undo)} entries left")
        return True

    def redo(self) -> bool:
        """Re-apply an undone snapshot. Returns False when there is nothing to redo."""
        if not self._redo:
            return False
        snapshot = self._redo.pop()
        # No coalesce key: an edit right after redo never merges into it
        self._undo.append(
            HistoryEntry(
                snapshot=self._store.snapshot(),
                coalesce_key=None,
                recorded_at=self._clock(),
            )
        )
        self._store.restore(snapshot)
        return True

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def close(self) -> None:
        """Stop recording store changes."""
        self._unsubscribe()

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)


__all__ = ["HistoryManager", "HistoryEntry"]
