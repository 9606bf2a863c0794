"""Bot-to-bot feedback loop detection for one channel."""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeAlias

from loguru import logger

from llmirc.core.models import Identity, Turn, irc_casefold

PairKey: TypeAlias = tuple[str, str]

NICK_TOKEN = re.compile(r"[A-Za-z\[\]\\`^{}|_][\w\[\]\\`^{}|-]*")


class PairState(StrEnum):
    NORMAL = "normal"
    SUSPECT = "suspect"
    SUPPRESSED = "suppressed"


@dataclass
class _PairRecord:
    count: int = 0
    state: PairState = PairState.NORMAL
    suppressed_until: float = 0.0


def pair_key(a: str, b: str) -> PairKey:
    """Canonical key for a pair of nicknames."""
    left, right = irc_casefold(a), irc_casefold(b)
    return (left, right) if left <= right else (right, left)


def mentions(text: str, nick: str) -> bool:
    """True when ``nick`` appears in ``text`` as a whole nickname."""
    if not nick:
        return False
    pattern = rf"(?<![\w\[\]\\`^{{}}|-]){re.escape(nick)}(?![\w\[\]\\`^{{}}|-])"
    return re.search(pattern, text, flags=re.IGNORECASE) is not None


class LoopGuard:
    """Counts consecutive bot-to-bot replies per pair and suppresses runaway pairs.

    A bot turn counts as a direct reply to another bot when it mentions that
    bot's nick, or when the previous channel turn was that bot's. Bots are
    known once they have spoken, or up front through ``is_bot`` (the configured
    bot nick patterns), so a mention of a quiet bot counts too. Pairs move
    NORMAL -> SUSPECT at ``suspect_after`` exchanges and SUSPECT -> SUPPRESSED
    at ``suppress_after``. A suppressed pair resets to NORMAL once its cooldown
    passes. Any human turn resets the counters of every pair; an active
    suppression keeps running until its cooldown ends.
    """

    def __init__(
        self,
        *,
        suspect_after: int,
        suppress_after: int,
        cooldown_seconds: float,
        channel: str = "",
        is_bot: Callable[[str], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if suspect_after < 1:
            raise ValueError("suspect_after must be >= 1")
        if suppress_after < suspect_after:
            raise ValueError("suppress_after must be >= suspect_after")
        self.suspect_after = suspect_after
        self.suppress_after = suppress_after
        self.cooldown_seconds = cooldown_seconds
        self.channel = channel
        self._is_bot = is_bot
        self._clock = clock
        self._pairs: dict[PairKey, _PairRecord] = {}
        self._bots: dict[str, str] = {}

    def register(self, identity: Identity) -> None:
        """Make a bot known before it has spoken, so mentions of it count."""
        if identity.is_bot:
            self._bots[identity.key] = identity.nick

    def _expire(self, now: float) -> None:
        for key, rec in self._pairs.items():
            if rec.state is PairState.SUPPRESSED and rec.suppressed_until <= now:
                logger.info("Loop guard {}: pair {} cooldown over", self.channel, "/".join(key))
                rec.state = PairState.NORMAL
                rec.count = 0
                rec.suppressed_until = 0.0

    def _reply_target(self, turn: Turn, previous: Turn | None) -> str | None:
        sender = turn.speaker.key
        for key, nick in self._bots.items():
            if key != sender and mentions(turn.text, nick):
                return nick
        if self._is_bot is not None:
            for word in NICK_TOKEN.findall(turn.text):
                key = irc_casefold(word)
                if key != sender and self._is_bot(word):
                    self._bots[key] = word
                    return word
        if previous is not None and previous.speaker.is_bot and previous.speaker.key != sender:
            return previous.speaker.nick
        return None

    def observe(self, turn: Turn, previous: Turn | None, now: float | None = None) -> PairState | None:
        """Account for one channel turn.

        Returns the pair's new state when this turn moved a pair into
        SUSPECT or SUPPRESSED, otherwise None.
        """
        now = self._clock() if now is None else now
        self._expire(now)

        if not turn.speaker.is_bot:
            self._on_human()
            return None

        self._bots[turn.speaker.key] = turn.speaker.nick
        if previous is not None and previous.speaker.is_bot:
            self._bots.setdefault(previous.speaker.key, previous.speaker.nick)

        peer = self._reply_target(turn, previous)
        if peer is None:
            return None

        key = pair_key(turn.speaker.nick, peer)
        rec = self._pairs.setdefault(key, _PairRecord())
        if rec.state is PairState.SUPPRESSED:
            return None

        rec.count += 1
        if rec.count >= self.suppress_after:
            rec.state = PairState.SUPPRESSED
            rec.suppressed_until = now + self.cooldown_seconds
            logger.warning(
                "Loop guard {}: suppressing {} after {} exchanges for {:.0f}s",
                self.channel,
                "/".join(key),
                rec.count,
                self.cooldown_seconds,
            )
            return PairState.SUPPRESSED
        if rec.count >= self.suspect_after and rec.state is PairState.NORMAL:
            rec.state = PairState.SUSPECT
            logger.warning(
                "Loop guard {}: {} look like a loop ({} exchanges)",
                self.channel,
                "/".join(key),
                rec.count,
            )
            return PairState.SUSPECT
        return None

    def _on_human(self) -> None:
        for rec in self._pairs.values():
            rec.count = 0
            if rec.state is PairState.SUSPECT:
                rec.state = PairState.NORMAL

    def state(self, a: Identity | str, b: Identity | str, now: float | None = None) -> PairState:
        self._expire(self._clock() if now is None else now)
        rec = self._pairs.get(pair_key(_nick(a), _nick(b)))
        return rec.state if rec else PairState.NORMAL

    def exchanges(self, a: Identity | str, b: Identity | str) -> int:
        rec = self._pairs.get(pair_key(_nick(a), _nick(b)))
        return rec.count if rec else 0

    def is_suppressed(self, a: Identity | str, b: Identity | str, now: float | None = None) -> bool:
        return self.state(a, b, now) is PairState.SUPPRESSED


def _nick(value: Identity | str) -> str:
    return value.nick if isinstance(value, Identity) else value
