"""Bounded, time-coalesced undo/redo history for one chapter session."""

import logging
import time
from collections import deque
from typing import Callable, Iterable, Optional

from models.block import Snapshot, TextBlock, take_snapshot

logger = logging.getLogger(__name__)


class HistoryManager:
    """Undo/redo stacks of whole-chapter snapshots.

    Structural operations call ``push`` unconditionally. Text edits go
    through ``record_edit``, which folds a rapid run of edits to the same
    block into the snapshot taken before the first of them.

    Args:
        max_depth: Maximum entries per stack; the oldest entry is evicted.
        coalesce_ms: Edits to the same block closer together than this
            share one undo entry.
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        max_depth: int = 20,
        coalesce_ms: int = 3000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_depth = max_depth
        self.coalesce_ms = coalesce_ms
        self._clock = clock
        self.undo_stack: deque[Snapshot] = deque(maxlen=max_depth)
        self.redo_stack: deque[Snapshot] = deque(maxlen=max_depth)
        self.last_key: Optional[str] = None
        self.last_push_time: float = 0.0

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def clear(self) -> None:
        self.undo_stack.clear()
        self.redo_stack.clear()
        self.reset_cursor()

    def reset_cursor(self) -> None:
        self.last_key = None
        self.last_push_time = 0.0

    def push(self, blocks: Iterable[TextBlock]) -> None:
        """Record the current sequence and start a fresh edit run."""
        self.undo_stack.append(take_snapshot(blocks))
        self.redo_stack.clear()
        self.last_key = None
        self.last_push_time = self._clock()

    def record_edit(self, blocks: Iterable[TextBlock], key: str) -> bool:
        """Record a content edit of ``key``; returns True if a snapshot was pushed."""
        now = self._clock()
        elapsed_ms = (now - self.last_push_time) * 1000
        should_push = self.last_key != key or elapsed_ms > self.coalesce_ms
        if should_push:
            self.undo_stack.append(take_snapshot(blocks))
            self.last_push_time = now
        else:
            logger.debug("Coalescing edit of %s (%.0fms since last push)", key, elapsed_ms)
        self.redo_stack.clear()
        self.last_key = key
        return should_push

    def pop_undo(self, current: Iterable[TextBlock]) -> Optional[Snapshot]:
        """Take the newest undo entry, saving ``current`` for redo."""
        if not self.undo_stack:
            return None
        previous = self.undo_stack.pop()
        self.redo_stack.append(take_snapshot(current))
        self.reset_cursor()
        return previous

    def pop_redo(self, current: Iterable[TextBlock]) -> Optional[Snapshot]:
        """Take the newest redo entry, saving ``current`` for undo."""
        if not self.redo_stack:
            return None
        following = self.redo_stack.pop()
        self.undo_stack.append(take_snapshot(current))
        self.reset_cursor()
        return following
