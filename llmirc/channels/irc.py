"""IRC transport: a pydle client whose callbacks feed a pulled event stream."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pydle
from loguru import logger

from llmirc.config.schema import IRCConfig
from llmirc.core.errors import AuthenticationError, ConnectError, SendError
from llmirc.core.models import (
    Disconnected,
    InboundEvent,
    Join,
    Joined,
    JoinFailed,
    Message,
    OutboundCommand,
    Ping,
    Pong,
    PrivMsg,
    Quit,
    irc_casefold,
)

CLOSE_TIMEOUT_SECONDS = 2.0
CHANNEL_PREFIXES = "#&+!"
_AUTH_ERROR_MARKERS = ("password", "authentication", "sasl", "banned", "k-lined")


def _sanitize(value: str) -> str:
    return value.replace("\r", " ").replace("\n", " ").replace("\x00", "")


class IRCClient(pydle.Client):
    """pydle client that turns protocol callbacks into queued events.

    pydle's own reconnect logic is switched off; a disconnect ends this
    client and the supervisor opens a new one.
    """

    RECONNECT_ON_ERROR = False

    def __init__(self, config: IRCConfig, **kwargs: Any):
        super().__init__(
            config.nickname,
            username=config.resolved_username,
            realname=config.realname,
            eventloop=asyncio.get_running_loop(),
            **kwargs,
        )
        self.config = config
        self.current_nick = config.nickname
        self.inbound: asyncio.Queue[InboundEvent] = asyncio.Queue()
        self.registration: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._nick_attempts = 1
        self._error_reason: str | None = None
        self._finished = False

    def _is_self(self, nick: str | None) -> bool:
        return bool(nick) and irc_casefold(nick) == irc_casefold(self.current_nick)

    def _push(self, event: InboundEvent) -> None:
        if not self._finished:
            self.inbound.put_nowait(event)

    def _fail_registration(self, error: Exception) -> None:
        if not self.registration.done():
            self.registration.set_exception(error)

    # ── Registration ─────────────────────────────────────────────────────

    async def on_raw_001(self, message: Any) -> None:
        """RPL_WELCOME: registration is complete and the server names our nick."""
        await super().on_raw_001(message)
        if message.params:
            self.current_nick = message.params[0]
        if not self.registration.done():
            self.registration.set_result(None)

    async def _nick_rejected(self, message: Any) -> None:
        if self.registration.done():
            return
        if self._nick_attempts >= self.config.max_nick_attempts:
            self._fail_registration(ConnectError(f"Nickname rejected: {message.params[-1]}"))
            return
        self._nick_attempts += 1
        self.current_nick = f"{self.current_nick}_"
        logger.warning("Nickname unavailable, retrying as {}", self.current_nick)
        await self.rawmsg("NICK", self.current_nick)

    async def on_raw_432(self, message: Any) -> None:
        await self._nick_rejected(message)

    async def on_raw_433(self, message: Any) -> None:
        await self._nick_rejected(message)

    async def on_raw_436(self, message: Any) -> None:
        await self._nick_rejected(message)

    async def on_raw_464(self, message: Any) -> None:
        """ERR_PASSWDMISMATCH."""
        self._fail_registration(AuthenticationError(f"464: {message.params[-1]}"))

    async def on_raw_465(self, message: Any) -> None:
        """ERR_YOUREBANNEDCREEP."""
        self._fail_registration(AuthenticationError(f"465: {message.params[-1]}"))

    async def on_raw_error(self, message: Any) -> None:
        text = message.params[-1] if message.params else "server error"
        self._error_reason = text
        if any(marker in text.lower() for marker in _AUTH_ERROR_MARKERS):
            self._fail_registration(AuthenticationError(text))
        else:
            self._fail_registration(ConnectError(f"Server error during registration: {text}"))
        await self.disconnect(expected=False)

    # ── Channel events ───────────────────────────────────────────────────

    async def on_raw_ping(self, message: Any) -> None:
        await super().on_raw_ping(message)
        self._push(Ping(token=message.params[0] if message.params else ""))

    async def on_join(self, channel: str, user: str) -> None:
        if self._is_self(user):
            self._push(Joined(channel=channel))

    async def _join_failed(self, message: Any) -> None:
        channel = message.params[1] if len(message.params) > 1 else ""
        self._push(JoinFailed(channel=channel, reason=f"{message.command}: {message.params[-1]}"))

    on_raw_403 = _join_failed
    on_raw_405 = _join_failed
    on_raw_471 = _join_failed
    on_raw_473 = _join_failed
    on_raw_474 = _join_failed
    on_raw_475 = _join_failed

    async def on_nick_change(self, old: str, new: str) -> None:
        if self._is_self(old):
            self.current_nick = new
            logger.info("Nickname changed to {}", new)

    async def on_channel_message(self, target: str, by: str, message: str) -> None:
        if self._is_self(by):
            return
        self._push(Message(nick=by, channel=target, text=message))

    async def on_ctcp_action(self, by: str, target: str, contents: str) -> None:
        if self._is_self(by) or target[:1] not in CHANNEL_PREFIXES:
            return
        self._push(Message(nick=by, channel=target, text=f"* {by} {contents}"))

    async def on_disconnect(self, expected: bool) -> None:
        if expected:
            reason = "closed locally"
        else:
            reason = self._error_reason or "server closed the connection"
        self._fail_registration(ConnectError(f"Disconnected during registration: {reason}"))
        self._push(Disconnected(reason=reason))
        self._finished = True


class IRCConnection:
    """A live, registered IRC connection.

    Created via :meth:`open`; the inbound side is consumed once through
    :meth:`events`. After a disconnect a new connection must be opened.
    """

    def __init__(self, client: IRCClient):
        self._client = client
        self._closed = False
        self._events_started = False

    @classmethod
    async def open(cls, config: IRCConfig) -> "IRCConnection":
        """Connect and register with the server.

        Raises:
            AuthenticationError: The server rejected the password or banned us.
            ConnectError: Socket failure, timeout, or any other registration failure.
        """
        logger.info(
            "Connecting to IRC {}:{} (tls={}) as {}",
            config.server,
            config.port,
            config.tls,
            config.nickname,
        )
        client = IRCClient(config)
        try:
            await asyncio.wait_for(
                client.connect(
                    config.server,
                    config.port,
                    password=config.password or None,
                    tls=config.tls,
                    tls_verify=config.tls_verify,
                ),
                timeout=config.connect_timeout_seconds,
            )
        except TimeoutError as e:
            raise ConnectError(f"Timed out connecting to {config.server}:{config.port}") from e
        except OSError as e:
            raise ConnectError(f"Failed to connect to {config.server}:{config.port}: {e}") from e

        conn = cls(client)
        try:
            await asyncio.wait_for(client.registration, timeout=config.registration_timeout_seconds)
        except TimeoutError as e:
            await conn._abort()
            raise ConnectError("IRC registration timed out") from e
        except BaseException:
            await conn._abort()
            raise
        logger.info("Registered with {} as {}", config.server, conn.nickname)
        return conn

    @property
    def nickname(self) -> str:
        return self._client.current_nick

    @property
    def is_closed(self) -> bool:
        return self._closed

    def events(self) -> AsyncIterator[InboundEvent]:
        """Return the inbound event stream. Ends with ``Disconnected``."""
        if self._events_started:
            raise RuntimeError("IRC event stream already consumed; open a new connection")
        self._events_started = True
        return self._event_stream()

    async def _event_stream(self) -> AsyncIterator[InboundEvent]:
        while True:
            event = await self._client.inbound.get()
            yield event
            if isinstance(event, Disconnected):
                return

    async def send(self, command: OutboundCommand) -> None:
        """Write one command.

        Raises:
            SendError: The connection is closed or the write failed.
        """
        if self._closed:
            raise SendError("IRC connection is closed")
        match command:
            case Join(channel=channel):
                args: tuple[str, ...] = ("JOIN", _sanitize(channel))
            case PrivMsg(target=target, text=text):
                args = ("PRIVMSG", _sanitize(target), _sanitize(text))
            case Pong(token=token):
                args = ("PONG", _sanitize(token))
            case Quit(reason=reason):
                args = ("QUIT", _sanitize(reason)) if reason else ("QUIT",)
            case _:
                raise TypeError(f"Unsupported outbound command: {command!r}")
        try:
            await self._client.rawmsg(*args)
        except Exception as e:
            raise SendError(f"Failed to send {type(command).__name__}: {e}") from e

    async def close(self, reason: str = "") -> None:
        """Quit and close the socket. Idempotent."""
        if self._closed:
            return
        try:
            await asyncio.wait_for(self.send(Quit(reason=reason)), timeout=CLOSE_TIMEOUT_SECONDS)
        except (SendError, TimeoutError) as e:
            logger.debug("QUIT not delivered: {}", e)
        await self._abort()

    async def _abort(self) -> None:
        self._closed = True
        try:
            await asyncio.wait_for(self._client.disconnect(expected=True), timeout=CLOSE_TIMEOUT_SECONDS)
        except (OSError, TimeoutError) as e:
            logger.debug("IRC socket close failed: {}", e)


async def connect(config: IRCConfig) -> IRCConnection:
    """Open a registered IRC connection for ``config``."""
    return await IRCConnection.open(config)
