"""Decide whether this bot answers a channel message or leads a new topic."""

from __future__ import annotations

import random
import re
import time
from collections.abc import Callable, Iterable
from fnmatch import fnmatchcase

from llmirc.core.models import (
    Identity,
    Ignore,
    Respond,
    ScheduleLead,
    TriggerDecision,
    Turn,
    irc_casefold,
)
from llmirc.policy.loop_guard import PairState, mentions


class IdentityResolver:
    """Classify nicknames as self, bot or human for each message."""

    def __init__(self, *, own_nick: str, bot_patterns: Iterable[str] = ()):
        self.own_nick = own_nick
        self._patterns = tuple(irc_casefold(p) for p in bot_patterns if p.strip())

    def resolve(self, nick: str) -> Identity:
        folded = irc_casefold(nick)
        if folded == irc_casefold(self.own_nick):
            return Identity(nick=nick, kind="self")
        if any(fnmatchcase(folded, pattern) for pattern in self._patterns):
            return Identity(nick=nick, kind="bot")
        return Identity(nick=nick, kind="human")

    def is_bot(self, nick: str) -> bool:
        """True for this bot and for nicks matching a bot pattern."""
        return self.resolve(nick).is_bot

    def self_identity(self) -> Identity:
        return Identity(nick=self.own_nick, kind="self")


def addresses(text: str, nick: str) -> bool:
    """True when ``text`` is addressed to ``nick`` by prefix or mention."""
    stripped = text.lstrip()
    prefix = re.match(rf"{re.escape(nick)}\s*[:,]", stripped, flags=re.IGNORECASE)
    return prefix is not None or mentions(stripped, nick)


class TriggerPolicy:
    """Per-message response decision.

    Priority: own messages are ignored; a message from a bot whose pair with
    us is suppressed is ignored even when it addresses us; direct address
    responds; ``respond_to_all`` responds to everything else; lead mode
    schedules a lead after the idle threshold plus jitter; otherwise ignore.
    """

    def __init__(
        self,
        *,
        lead: bool = False,
        respond_to_all: bool = False,
        idle_threshold_seconds: float = 120.0,
        lead_jitter_seconds: float = 15.0,
        rng: random.Random | None = None,
    ):
        self.lead = lead
        self.respond_to_all = respond_to_all
        self.idle_threshold_seconds = max(0.0, idle_threshold_seconds)
        self.lead_jitter_seconds = max(0.0, lead_jitter_seconds)
        self._rng = rng or random.Random()

    def lead_delay(self, silent_for: float = 0.0) -> float:
        """Seconds until a lead should fire, given how long the channel has been quiet."""
        remaining = max(0.0, self.idle_threshold_seconds - max(0.0, silent_for))
        return remaining + self._rng.uniform(0.0, self.lead_jitter_seconds)

    def decide(
        self,
        turn: Turn,
        *,
        own_nick: str,
        pair_state: PairState = PairState.NORMAL,
        silent_for: float = 0.0,
    ) -> TriggerDecision:
        speaker = turn.speaker
        if speaker.kind == "self":
            return Ignore(reason="own_message")
        if speaker.kind == "bot" and pair_state is PairState.SUPPRESSED:
            return Ignore(reason="loop_suppressed")
        if addresses(turn.text, own_nick):
            return Respond(reason="addressed")
        if self.respond_to_all:
            return Respond(reason="respond_to_all")
        if self.lead:
            return ScheduleLead(after=self.lead_delay(silent_for))
        return Ignore(reason="not_addressed")


class LeadTimer:
    """Single cancellable lead deadline; scheduling again replaces the old one."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._deadline: float | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    @property
    def generation(self) -> int:
        return self._generation

    def schedule(self, after: float) -> int:
        self._generation += 1
        self._deadline = self._clock() + max(0.0, after)
        return self._generation

    def cancel(self) -> bool:
        was_pending = self._deadline is not None
        self._deadline = None
        return was_pending

    def remaining(self, now: float | None = None) -> float | None:
        if self._deadline is None:
            return None
        now = self._clock() if now is None else now
        return max(0.0, self._deadline - now)

    def fire(self, now: float | None = None) -> int | None:
        """Consume the deadline if it has passed; return its generation."""
        if self._deadline is None:
            return None
        now = self._clock() if now is None else now
        if now < self._deadline:
            return None
        self._deadline = None
        return self._generation
