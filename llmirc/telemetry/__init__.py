"""Telemetry backends."""

from llmirc.telemetry.base import TelemetryPort
from llmirc.telemetry.inmemory import InMemoryTelemetry

__all__ = ["InMemoryTelemetry", "TelemetryPort"]
