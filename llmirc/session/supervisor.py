"""Connection supervisor: owns the IRC transport and the channel workers."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import random

from loguru import logger

from llmirc.channels.irc import connect
from llmirc.config.schema import Config
from llmirc.core.errors import AuthenticationError, ConnectError, SendError, TransportError
from llmirc.core.models import (
    ConnectionState,
    Disconnected,
    InboundEvent,
    Join,
    Joined,
    JoinFailed,
    Message,
    OutboundCommand,
    irc_casefold,
)
from llmirc.core.ports import ConnectorPort, ModelPort, TransportPort
from llmirc.policy.trigger import IdentityResolver
from llmirc.session.backoff import Backoff
from llmirc.session.channel import ChannelWorker
from llmirc.telemetry.base import TelemetryPort


class SessionSupervisor:
    """Keep one IRC connection alive and route its events to channel workers.

    State moves DISCONNECTED -> CONNECTING -> JOINING -> JOINED. Any transport
    failure moves to RECONNECTING and retries with capped exponential backoff.
    Authentication failures are fatal and propagate out of ``run``.
    """

    def __init__(
        self,
        *,
        config: Config,
        model: ModelPort,
        connector: ConnectorPort | None = None,
        telemetry: TelemetryPort | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config
        self.model = model
        self.telemetry = telemetry
        self._connector = connector or functools.partial(connect, config.irc)
        irc = config.irc
        self._backoff = Backoff(
            initial_ms=irc.reconnect_initial_ms,
            max_ms=irc.reconnect_max_ms,
            factor=irc.reconnect_factor,
            jitter=irc.reconnect_jitter,
            rng=rng,
        )
        self.identities = IdentityResolver(
            own_nick=irc.nickname,
            bot_patterns=config.trigger.bot_nicks,
        )
        self.state = ConnectionState.DISCONNECTED
        self._connection: TransportPort | None = None
        self._joined: set[str] = set()
        self._stopping = asyncio.Event()
        self._fatal: BaseException | None = None
        self._stop_task: asyncio.Task[None] | None = None
        self.workers: dict[str, ChannelWorker] = {
            irc_casefold(channel): ChannelWorker(
                channel=channel,
                config=config,
                model=model,
                send=self._send,
                identities=self.identities,
                is_joined=functools.partial(self.is_joined, channel),
                telemetry=telemetry,
                on_fatal=self._on_worker_fatal,
            )
            for channel in irc.channels
        }

    # ── State ────────────────────────────────────────────────────────────

    def _transition(self, new_state: ConnectionState) -> None:
        if new_state is self.state:
            return
        logger.info("Connection state {} -> {}", self.state.value, new_state.value)
        self.state = new_state

    def is_joined(self, channel: str) -> bool:
        return self.state is ConnectionState.JOINED and irc_casefold(channel) in self._joined

    @property
    def connection(self) -> TransportPort | None:
        return self._connection

    async def _send(self, command: OutboundCommand) -> None:
        conn = self._connection
        if conn is None:
            raise SendError("Not connected")
        await conn.send(command)

    # ── Main loop ────────────────────────────────────────────────────────

    async def run(self) -> None:
        """Run until ``stop`` is called or a fatal error occurs.

        Raises:
            AuthenticationError: The server rejected our credentials.
            ConnectError: Reconnect attempts were exhausted.
            UnauthorizedError: The model backend rejected the API key.
        """
        max_attempts = self.config.irc.reconnect_max_attempts
        for worker in self.workers.values():
            worker.start()
        try:
            while not self._stopping.is_set():
                try:
                    await self._run_connection()
                except AuthenticationError as e:
                    logger.error("IRC authentication failed: {}", e)
                    raise
                except TransportError as e:
                    logger.warning("IRC connection failed: {}", e)

                if self._stopping.is_set():
                    break

                self._transition(ConnectionState.RECONNECTING)
                if max_attempts and self._backoff.attempts >= max_attempts:
                    raise ConnectError(f"Giving up after {self._backoff.attempts} reconnect attempts")
                delay = self._backoff.next_delay()
                if self.telemetry is not None:
                    self.telemetry.incr("reconnects")
                logger.info(
                    "Reconnecting to {} in {:.2f}s (attempt {})",
                    self.config.irc.server,
                    delay,
                    self._backoff.attempts,
                )
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stopping.wait(), timeout=delay)
        finally:
            await self._shutdown()

        if self._fatal is not None:
            raise self._fatal

    async def _run_connection(self) -> None:
        self._transition(ConnectionState.CONNECTING)
        conn = await self._connector()
        self._connection = conn
        self._backoff.reset()
        self.identities.own_nick = conn.nickname
        try:
            if self._stopping.is_set():
                return
            self._transition(ConnectionState.JOINING)
            for channel in self.config.irc.channels:
                await conn.send(Join(channel=channel))
            async for event in conn.events():
                self.identities.own_nick = conn.nickname
                self._dispatch(event)
                if isinstance(event, Disconnected):
                    if not self._stopping.is_set():
                        logger.warning("Disconnected from {}: {}", self.config.irc.server, event.reason)
                    break
        finally:
            self._connection = None
            self._joined.clear()
            await conn.close()

    def _dispatch(self, event: InboundEvent) -> None:
        match event:
            case Joined(channel=channel):
                worker = self.workers.get(irc_casefold(channel))
                if worker is None:
                    logger.debug("Ignoring join to unconfigured channel {}", channel)
                    return
                self._joined.add(irc_casefold(channel))
                self._transition(ConnectionState.JOINED)
                worker.submit(event)
            case JoinFailed(channel=channel) | Message(channel=channel):
                worker = self.workers.get(irc_casefold(channel))
                if worker is not None:
                    worker.submit(event)

    # ── Shutdown ─────────────────────────────────────────────────────────

    def _on_worker_fatal(self, error: BaseException) -> None:
        if self._fatal is None:
            self._fatal = error
        if self._stop_task is None:
            self._stop_task = asyncio.get_running_loop().create_task(self.stop())

    async def stop(self) -> None:
        """Close the transport and let ``run`` wind down the channel workers."""
        self._stopping.set()
        conn = self._connection
        if conn is not None:
            await conn.close("Shutting down")

    async def _shutdown(self) -> None:
        self._stopping.set()
        conn = self._connection
        if conn is not None:
            with contextlib.suppress(TransportError):
                await conn.close("Shutting down")
        for worker in self.workers.values():
            await worker.stop()
        self._transition(ConnectionState.DISCONNECTED)
        if self.telemetry is not None and hasattr(self.telemetry, "snapshot"):
            logger.info("Session counters: {}", self.telemetry.snapshot())
