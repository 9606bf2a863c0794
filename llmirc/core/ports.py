"""Port interfaces for the orchestration core."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

from llmirc.core.models import ContextWindow, GeneratedTurn, InboundEvent, OutboundCommand


class TransportPort(Protocol):
    """One live IRC connection."""

    nickname: str

    def events(self) -> AsyncIterator[InboundEvent]:
        """Iterate inbound events until disconnect. Not restartable."""

    async def send(self, command: OutboundCommand) -> None:
        """Write one command or raise SendError."""

    async def close(self, reason: str = "") -> None:
        """Close the connection. Safe to call more than once."""


class ConnectorPort(Protocol):
    """Factory that opens a registered transport or raises ConnectError."""

    async def __call__(self) -> TransportPort: ...


class ModelPort(Protocol):
    """Stateless chat-completion client."""

    async def complete(
        self,
        system_prompt: str,
        window: ContextWindow,
        *,
        nudge: str | None = None,
        nickname: str | None = None,
    ) -> GeneratedTurn:
        """Return one generated turn or raise ModelError."""
