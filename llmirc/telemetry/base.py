"""Base telemetry port protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TelemetryPort(Protocol):
    """Protocol for telemetry backends.

    Counters track bridge activity per channel:
    - model_calls / model_errors: chat-completion outcomes
    - rate_dropped: replies dropped because the rate window was full
    - loop_suspect / loop_suppressed: loop guard transitions
    - reconnects: transport reconnect attempts
    """

    def incr(self, name: str, value: int = 1, labels: tuple[tuple[str, str], ...] = ()) -> None:
        """Increase a named counter by ``value`` with optional labels.

        Args:
            name: Metric name (e.g., "model_calls")
            value: Amount to increment (default 1)
            labels: Optional label tuples (e.g., (("channel", "#chat"),))
        """

    def timing(
        self, name: str, value: float, labels: tuple[tuple[str, str], ...] = ()
    ) -> None:
        """Record timing of an operation in seconds.

        Args:
            name: Metric name (e.g., "model_latency_seconds")
            value: Duration in seconds
            labels: Optional label tuples
        """
