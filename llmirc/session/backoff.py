"""Reconnect backoff."""

from __future__ import annotations

import random


class Backoff:
    """Capped exponential backoff with bounded upward jitter.

    Successive delays never decrease and never exceed ``max_ms``; ``reset``
    starts over after a successful connect.
    """

    def __init__(
        self,
        *,
        initial_ms: int = 1000,
        max_ms: int = 60000,
        factor: float = 2.0,
        jitter: float = 0.25,
        rng: random.Random | None = None,
    ):
        self.initial_ms = max(100, initial_ms)
        self.max_ms = max(self.initial_ms, max_ms)
        self.factor = max(1.0, factor)
        self.jitter = max(0.0, min(1.0, jitter))
        self._rng = rng or random.Random()
        self.attempts = 0
        self._last_ms = 0.0

    def next_delay(self) -> float:
        """Delay in seconds before the next attempt."""
        self.attempts += 1
        raw = self.initial_ms * (self.factor ** min(self.attempts - 1, 64))
        jittered = raw * (1.0 + self._rng.uniform(0.0, self.jitter))
        delay_ms = min(float(self.max_ms), max(self._last_ms, jittered))
        self._last_ms = delay_ms
        return delay_ms / 1000.0

    def reset(self) -> None:
        self.attempts = 0
        self._last_ms = 0.0
