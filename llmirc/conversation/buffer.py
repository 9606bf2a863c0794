"""Bounded per-channel conversation history."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import replace
from datetime import datetime, timedelta

from llmirc.core.models import ContextWindow, Turn, utcnow


class ContextBuffer:
    """Ordered, bounded history of recent turns for one channel.

    Turns are kept in arrival order. A turn whose timestamp is older than
    the newest stored turn is clamped forward so timestamps stay monotonic.
    Eviction is FIFO: by capacity on append, by age on append and on read.
    Owned by a single channel task, so there is no locking.
    """

    def __init__(self, *, capacity: int, retention_seconds: float):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be > 0")
        self.capacity = capacity
        self.retention = timedelta(seconds=retention_seconds)
        self._turns: deque[Turn] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def append(self, turn: Turn) -> Turn:
        """Store one turn and return it as stored."""
        newest = self._turns[-1] if self._turns else None
        if newest is not None and turn.timestamp < newest.timestamp:
            turn = replace(turn, timestamp=newest.timestamp)
        self._turns.append(turn)
        self.prune(turn.timestamp)
        return turn

    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def prune(self, now: datetime | None = None) -> int:
        """Drop turns older than the retention age. Returns how many were dropped."""
        cutoff = (now or utcnow()) - self.retention
        dropped = 0
        while self._turns and self._turns[0].timestamp < cutoff:
            self._turns.popleft()
            dropped += 1
        return dropped

    def window(
        self,
        max_turns: int,
        max_age_seconds: float,
        now: datetime | None = None,
    ) -> ContextWindow:
        """Snapshot the newest turns within both bounds, oldest first."""
        now = now or utcnow()
        self.prune(now)
        if max_turns <= 0:
            return ContextWindow()
        cutoff = now - timedelta(seconds=max_age_seconds)
        selected: list[Turn] = []
        for turn in reversed(self._turns):
            if len(selected) >= max_turns or turn.timestamp < cutoff:
                break
            selected.append(turn)
        selected.reverse()
        return ContextWindow(tuple(selected))

    def clear(self) -> None:
        self._turns.clear()
