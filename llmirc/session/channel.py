"""Per-channel coordinating task."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TypeAlias

from loguru import logger

from llmirc.channels.codec import privmsg_budget, split_into_chunks
from llmirc.config.schema import Config
from llmirc.conversation.buffer import ContextBuffer
from llmirc.core.errors import (
    ModelError,
    ModelTimeoutError,
    RateLimitedError,
    SendError,
    UnauthorizedError,
)
from llmirc.core.models import (
    Ignore,
    InboundEvent,
    Joined,
    JoinFailed,
    Message,
    OutboundCommand,
    PrivMsg,
    Respond,
    ScheduleLead,
    Turn,
    irc_casefold,
    utcnow,
)
from llmirc.core.ports import ModelPort
from llmirc.policy.loop_guard import LoopGuard, PairState
from llmirc.policy.rate import RateWindow
from llmirc.policy.trigger import IdentityResolver, LeadTimer, TriggerPolicy
from llmirc.telemetry.base import TelemetryPort

MODEL_TIMEOUT_GRACE_SECONDS = 5.0
DEFAULT_RATE_LIMIT_PAUSE_SECONDS = 30.0

Sender: TypeAlias = Callable[[OutboundCommand], Awaitable[None]]


@dataclass
class _PendingLines:
    nick: str
    timestamp: datetime
    flush_at: float
    lines: list[str] = field(default_factory=list)


class ChannelWorker:
    """Owns one channel's conversation state and processes its events in order.

    Inbound events are queued by the supervisor and handled one at a time,
    so the context buffer, loop guard and rate window need no locks. While a
    model call is outstanding nothing else is evaluated for this channel.
    """

    def __init__(
        self,
        *,
        channel: str,
        config: Config,
        model: ModelPort,
        send: Sender,
        identities: IdentityResolver,
        is_joined: Callable[[], bool],
        telemetry: TelemetryPort | None = None,
        on_fatal: Callable[[BaseException], None] | None = None,
        trigger: TriggerPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channel = channel
        self.config = config
        self.model = model
        self.identities = identities
        self.telemetry = telemetry
        self._send = send
        self._is_joined = is_joined
        self._on_fatal = on_fatal
        self._clock = clock

        conv = config.conversation
        self.buffer = ContextBuffer(capacity=conv.capacity, retention_seconds=conv.retention_seconds)
        self.guard = LoopGuard(
            suspect_after=config.loop_guard.suspect_after,
            suppress_after=config.loop_guard.suppress_after,
            cooldown_seconds=config.loop_guard.cooldown_seconds,
            channel=channel,
            is_bot=identities.is_bot,
            clock=clock,
        )
        self.rate = RateWindow(
            max_messages=config.rate_limit.max_messages,
            window_seconds=config.rate_limit.window_seconds,
            clock=clock,
        )
        self.trigger = trigger or TriggerPolicy(
            lead=config.trigger.lead,
            respond_to_all=config.trigger.respond_to_all,
            idle_threshold_seconds=config.trigger.idle_threshold_seconds,
            lead_jitter_seconds=config.trigger.lead_jitter_seconds,
        )
        self.lead_timer = LeadTimer(clock)
        self.guard.register(identities.self_identity())

        self._queue: asyncio.Queue[InboundEvent] = asyncio.Queue(
            maxsize=config.irc.inbound_queue_size
        )
        self._pending: dict[str, _PendingLines] = {}
        self._model_paused_until = 0.0
        self._task: asyncio.Task[None] | None = None
        self._dropped = 0

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name=f"channel:{self.channel}")

    async def stop(self) -> None:
        """Cancel pending timers and any in-flight model call."""
        self.lead_timer.cancel()
        self._pending.clear()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, event: InboundEvent) -> None:
        """Queue one event; on overflow the oldest queued event is dropped."""
        if self._queue.full():
            with contextlib.suppress(asyncio.QueueEmpty):
                self._queue.get_nowait()
                self._dropped += 1
                if self._dropped == 1 or self._dropped % 100 == 0:
                    logger.warning(f"{self.channel} inbound queue overflow: dropped={self._dropped}")
        self._queue.put_nowait(event)

    async def _run(self) -> None:
        logger.debug("Channel worker {} started", self.channel)
        while True:
            timeout = self._next_timeout()
            event: InboundEvent | None = None
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            except TimeoutError:
                pass
            try:
                if event is not None:
                    await self.handle(event)
                await self.tick()
            except Exception:
                logger.exception("Channel worker {} failed handling {!r}", self.channel, event)

    def _next_timeout(self) -> float | None:
        now = self._clock()
        deadlines = [pending.flush_at - now for pending in self._pending.values()]
        lead_in = self.lead_timer.remaining(now)
        if lead_in is not None:
            deadlines.append(lead_in)
        if not deadlines:
            return None
        return max(0.0, min(deadlines))

    # ── Event handling ───────────────────────────────────────────────────

    async def handle(self, event: InboundEvent) -> None:
        """Process one event from the transport."""
        match event:
            case Joined():
                logger.info("Joined {}", self.channel)
                if self.trigger.lead:
                    self._schedule_lead(self.trigger.lead_delay(0.0))
            case JoinFailed(reason=reason):
                logger.error("Could not join {}: {}", self.channel, reason)
            case Message(nick=nick, text=text, timestamp=timestamp):
                self.lead_timer.cancel()
                await self._accept_line(nick, text, timestamp)

    async def _accept_line(self, nick: str, text: str, timestamp: datetime) -> None:
        coalesce_s = self.config.conversation.coalesce_ms / 1000.0
        if coalesce_s <= 0:
            await self._process_message(nick, text, timestamp)
            return

        key = irc_casefold(nick)
        for other in [k for k in self._pending if k != key]:
            pending = self._pending.pop(other)
            await self._process_message(pending.nick, " ".join(pending.lines), pending.timestamp)

        pending = self._pending.get(key)
        if pending is None:
            pending = _PendingLines(nick=nick, timestamp=timestamp, flush_at=0.0)
            self._pending[key] = pending
        pending.lines.append(text)
        pending.flush_at = self._clock() + coalesce_s

    async def tick(self) -> None:
        """Flush coalesced lines and fire the lead timer when due."""
        now = self._clock()
        for key in [k for k, p in self._pending.items() if p.flush_at <= now]:
            pending = self._pending.pop(key)
            await self._process_message(pending.nick, " ".join(pending.lines), pending.timestamp)
        if self.lead_timer.fire(self._clock()) is not None:
            await self._lead()

    async def _process_message(self, nick: str, text: str, timestamp: datetime) -> None:
        identity = self.identities.resolve(nick)
        previous = self.buffer.last()
        turn = self.buffer.append(Turn(speaker=identity, text=text, timestamp=timestamp))
        logger.debug("<{}:{}> {}", self.channel, nick, text)
        self._record_guard(self.guard.observe(turn, previous))

        pair_state = PairState.NORMAL
        if identity.kind == "bot":
            pair_state = self.guard.state(identity, self.identities.self_identity())

        decision = self.trigger.decide(
            turn,
            own_nick=self.identities.own_nick,
            pair_state=pair_state,
        )
        match decision:
            case Respond(reason=reason):
                await self._reply(reason=reason)
            case ScheduleLead(after=after):
                self._schedule_lead(after)
            case Ignore(reason=reason):
                self._metric("trigger_ignored", reason=reason)

    def _schedule_lead(self, after: float) -> None:
        generation = self.lead_timer.schedule(after)
        logger.debug("Lead #{} scheduled in {} after {:.1f}s", generation, self.channel, after)

    async def _lead(self) -> None:
        newest = self.buffer.last()
        if newest is not None and newest.speaker.kind == "self":
            logger.debug("Skipping lead in {}: last turn is ours", self.channel)
            return
        await self._reply(reason="lead", nudge=self.config.model.lead_prompt)

    # ── Model call + send ────────────────────────────────────────────────

    async def _reply(self, *, reason: str, nudge: str | None = None) -> None:
        if not self._is_joined():
            self._metric("reply_dropped", reason="not_joined")
            return
        now = self._clock()
        if now < self._model_paused_until:
            self._metric("reply_dropped", reason="provider_backoff")
            return
        if not self.rate.has_capacity(now):
            logger.info(
                "Rate ceiling reached in {} ({} per {:.0f}s); dropping reply",
                self.channel,
                self.rate.max_messages,
                self.rate.window_seconds,
            )
            self._metric("rate_dropped")
            return

        window = self.buffer.window(
            self.config.conversation.window_turns,
            self.config.conversation.window_seconds,
        )
        self._metric("model_calls", reason=reason)
        timeout = self.config.model.timeout_seconds + MODEL_TIMEOUT_GRACE_SECONDS
        try:
            generated = await asyncio.wait_for(
                self.model.complete(
                    self.config.system_prompt_for(self.channel, self.identities.own_nick),
                    window,
                    nudge=nudge,
                    nickname=self.identities.own_nick,
                ),
                timeout=timeout,
            )
        except TimeoutError:
            self._model_failed(ModelTimeoutError(f"no answer within {timeout:.0f}s"))
            return
        except ModelError as e:
            self._model_failed(e)
            return

        if self.telemetry is not None:
            self.telemetry.timing(
                "model_latency_seconds",
                generated.latency_ms / 1000.0,
                labels=(("channel", self.channel),),
            )
        if not self._is_joined():
            self._metric("reply_dropped", reason="not_joined")
            return
        if not self.rate.try_acquire():
            self._metric("rate_dropped")
            return

        previous = self.buffer.last()
        sent = await self._send_shielded(generated.text)
        if sent == 0:
            return

        own = self.buffer.append(
            Turn(speaker=self.identities.self_identity(), text=generated.text, timestamp=utcnow())
        )
        logger.info("<{}:{}> {}", self.channel, own.speaker.nick, own.text)
        self._metric("replies_sent", reason=reason)
        self._record_guard(self.guard.observe(own, previous))
        if self.trigger.lead and reason != "lead":
            self._schedule_lead(self.trigger.lead_delay(0.0))

    def _model_failed(self, error: ModelError) -> None:
        self._metric("model_errors", reason=type(error).__name__)
        if isinstance(error, UnauthorizedError):
            logger.error("Model credential rejected: {}", error)
            if self._on_fatal is not None:
                self._on_fatal(error)
            return
        if isinstance(error, RateLimitedError):
            pause = error.retry_after or DEFAULT_RATE_LIMIT_PAUSE_SECONDS
            self._model_paused_until = self._clock() + pause
            logger.warning("Model rate limited in {}; pausing {:.0f}s", self.channel, pause)
            return
        logger.warning("Model call failed in {}: {}", self.channel, error)

    async def _send_shielded(self, text: str) -> int:
        """Send every chunk of one reply; cancellation waits for the reply to finish."""
        send_task = asyncio.ensure_future(self._send_lines(text))
        try:
            return await asyncio.shield(send_task)
        except asyncio.CancelledError:
            with contextlib.suppress(asyncio.CancelledError):
                await send_task
            raise

    async def _send_lines(self, text: str) -> int:
        budget = min(self.config.irc.max_line_bytes, privmsg_budget(self.channel))
        chunks = split_into_chunks(text, budget)
        delay = self.config.irc.line_delay_ms / 1000.0
        sent = 0
        for index, chunk in enumerate(chunks):
            try:
                await self._send(PrivMsg(target=self.channel, text=chunk))
            except SendError as e:
                logger.warning("Failed to send reply chunk to {}: {}", self.channel, e)
                self._metric("send_errors")
                break
            sent += 1
            if delay > 0 and index < len(chunks) - 1:
                await asyncio.sleep(delay)
        return sent

    # ── Telemetry ────────────────────────────────────────────────────────

    def _record_guard(self, transition: PairState | None) -> None:
        if transition is PairState.SUSPECT:
            self._metric("loop_suspect")
        elif transition is PairState.SUPPRESSED:
            self._metric("loop_suppressed")

    def _metric(self, name: str, *, reason: str | None = None) -> None:
        if self.telemetry is None:
            return
        labels: tuple[tuple[str, str], ...] = (("channel", self.channel),)
        if reason:
            labels += (("reason", reason),)
        self.telemetry.incr(name, labels=labels)
