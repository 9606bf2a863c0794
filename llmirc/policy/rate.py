"""Sliding-window ceiling for this bot's own replies."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable


class RateWindow:
    """Count of own outbound replies in the trailing ``window_seconds``.

    ``try_acquire`` only records when under the ceiling, so the number of
    recorded sends in any window of that length never exceeds ``max_messages``.
    """

    def __init__(
        self,
        *,
        max_messages: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_messages < 1:
            raise ValueError("max_messages must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_messages = max_messages
        self.window_seconds = window_seconds
        self._clock = clock
        self._sent: deque[float] = deque()

    def _expire(self, now: float) -> None:
        boundary = now - self.window_seconds
        while self._sent and self._sent[0] <= boundary:
            self._sent.popleft()

    def count(self, now: float | None = None) -> int:
        self._expire(self._clock() if now is None else now)
        return len(self._sent)

    def has_capacity(self, now: float | None = None) -> bool:
        return self.count(now) < self.max_messages

    def try_acquire(self, now: float | None = None) -> bool:
        """Record one send if the ceiling allows it."""
        now = self._clock() if now is None else now
        if not self.has_capacity(now):
            return False
        self._sent.append(now)
        return True

    def retry_in(self, now: float | None = None) -> float:
        """Seconds until one slot frees up (0 when capacity is available)."""
        now = self._clock() if now is None else now
        if self.has_capacity(now):
            return 0.0
        return max(0.0, self._sent[0] + self.window_seconds - now)
