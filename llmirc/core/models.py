"""Domain models for the conversation orchestration core."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal, TypeAlias

Nick: TypeAlias = str
ChannelName: TypeAlias = str
SpeakerKind: TypeAlias = Literal["human", "bot", "self"]


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class Identity:
    """Channel-scoped speaker handle, classified per message."""

    nick: Nick
    kind: SpeakerKind = "human"

    @property
    def is_bot(self) -> bool:
        """True for other bots and for this bot itself."""
        return self.kind != "human"

    @property
    def key(self) -> str:
        return irc_casefold(self.nick)


@dataclass(frozen=True, slots=True, kw_only=True)
class Turn:
    """One attributed message in a channel conversation."""

    speaker: Identity
    text: str
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def origin(self) -> SpeakerKind:
        return self.speaker.kind


@dataclass(frozen=True, slots=True)
class ContextWindow:
    """Read-only snapshot of recent turns, oldest first."""

    turns: tuple[Turn, ...] = ()

    def __len__(self) -> int:
        return len(self.turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self.turns)

    @property
    def newest(self) -> Turn | None:
        return self.turns[-1] if self.turns else None


class ConnectionState(StrEnum):
    """Supervisor connection lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    JOINING = "joining"
    JOINED = "joined"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True, slots=True, kw_only=True)
class GeneratedTurn:
    """Model output for one completion request."""

    text: str
    model: str
    latency_ms: float = 0.0
    tokens_prompt: int = 0
    tokens_completion: int = 0


# ── Transport events ─────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True, kw_only=True)
class Joined:
    channel: ChannelName


@dataclass(frozen=True, slots=True, kw_only=True)
class JoinFailed:
    channel: ChannelName
    reason: str


@dataclass(frozen=True, slots=True, kw_only=True)
class Message:
    nick: Nick
    channel: ChannelName
    text: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True, kw_only=True)
class Ping:
    token: str


@dataclass(frozen=True, slots=True, kw_only=True)
class Disconnected:
    reason: str


InboundEvent: TypeAlias = Joined | JoinFailed | Message | Ping | Disconnected


# ── Transport commands ───────────────────────────────────────────────────


@dataclass(frozen=True, slots=True, kw_only=True)
class Join:
    channel: ChannelName


@dataclass(frozen=True, slots=True, kw_only=True)
class PrivMsg:
    target: str
    text: str


@dataclass(frozen=True, slots=True, kw_only=True)
class Pong:
    token: str


@dataclass(frozen=True, slots=True, kw_only=True)
class Quit:
    reason: str = ""


OutboundCommand: TypeAlias = Join | PrivMsg | Pong | Quit


# ── Trigger decisions ────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True, kw_only=True)
class Respond:
    reason: str


@dataclass(frozen=True, slots=True, kw_only=True)
class Ignore:
    reason: str


@dataclass(frozen=True, slots=True, kw_only=True)
class ScheduleLead:
    after: float


TriggerDecision: TypeAlias = Respond | Ignore | ScheduleLead


_IRC_CASEMAP = str.maketrans("[]\\~", "{}|^")


def irc_casefold(nick: str) -> str:
    """Fold a nickname using the rfc1459 casemapping."""
    return nick.lower().translate(_IRC_CASEMAP)
