"""In-memory telemetry backend.

Keeps counters and timings in process memory so the supervisor can log a
summary on shutdown and tests can assert on them.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import TypeAlias

Labels: TypeAlias = tuple[tuple[str, str], ...]
MetricKey: TypeAlias = tuple[str, Labels]


@dataclass
class InMemoryTelemetry:
    """Counters and timings keyed by metric name plus sorted labels."""

    counters: Counter[MetricKey] = field(default_factory=Counter)
    timings: dict[MetricKey, list[float]] = field(default_factory=lambda: defaultdict(list))

    @staticmethod
    def _key(name: str, labels: Labels | None) -> MetricKey:
        return name, tuple(sorted(labels or ()))

    def incr(self, name: str, value: int = 1, labels: Labels = ()) -> None:
        self.counters[self._key(name, labels)] += value

    def timing(self, name: str, value: float, labels: Labels = ()) -> None:
        self.timings[self._key(name, labels)].append(value)

    def get_counter(self, name: str, labels: Labels = ()) -> int:
        return int(self.counters.get(self._key(name, labels), 0))

    def get_timing_values(self, name: str, labels: Labels = ()) -> list[float]:
        return list(self.timings.get(self._key(name, labels), ()))

    def total(self, name: str) -> int:
        """Sum of a counter across every label set."""
        return sum(value for (metric, _), value in self.counters.items() if metric == name)

    def snapshot(self) -> dict[str, int]:
        """Flatten counters into ``{"name{k=v,...}": value}`` for summary logging."""
        out: dict[str, int] = {}
        for (name, labels), value in sorted(self.counters.items()):
            label_str = ",".join(f"{k}={v}" for k, v in labels)
            out[f"{name}{{{label_str}}}" if label_str else name] = int(value)
        return out

    def reset(self) -> None:
        self.counters.clear()
        self.timings.clear()
