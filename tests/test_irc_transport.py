import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pydle
import pytest

from llmirc.channels.irc import IRCClient, IRCConnection
from llmirc.config.schema import IRCConfig
from llmirc.core.errors import AuthenticationError, ConnectError, SendError
from llmirc.core.models import (
    Disconnected,
    InboundEvent,
    Join,
    Joined,
    JoinFailed,
    Message,
    Ping,
    PrivMsg,
)


def _config(**kwargs: object) -> IRCConfig:
    values: dict[str, object] = {
        "server": "127.0.0.1",
        "nickname": "bot",
        "channels": ["#chat"],
        "registration_timeout_seconds": 5,
        "connect_timeout_seconds": 5,
    }
    values.update(kwargs)
    return IRCConfig(**values)


def _message(command: str, *params: str) -> SimpleNamespace:
    return SimpleNamespace(command=command, params=list(params), source="irc.example", tags={})


def _client(**kwargs: object) -> IRCClient:
    client = IRCClient(_config(**kwargs))
    client.rawmsg = AsyncMock()  # type: ignore[method-assign]
    return client


def _drain(client: IRCClient) -> list[InboundEvent]:
    events = []
    while not client.inbound.empty():
        events.append(client.inbound.get_nowait())
    return events


# ── IRCClient callbacks ──────────────────────────────────────────────────


async def test_welcome_completes_registration_with_server_nick() -> None:
    client = _client()
    with patch.object(pydle.Client, "on_raw_001", AsyncMock()):
        await client.on_raw_001(_message("001", "bot_", "Welcome"))
    assert client.registration.done()
    assert client.registration.exception() is None
    assert client.current_nick == "bot_"


async def test_nick_in_use_retries_with_suffix_then_gives_up() -> None:
    client = _client(max_nick_attempts=2)
    await client.on_raw_433(_message("433", "*", "bot", "Nickname is already in use"))
    client.rawmsg.assert_awaited_once_with("NICK", "bot_")
    assert client.current_nick == "bot_"
    assert not client.registration.done()

    await client.on_raw_433(_message("433", "*", "bot_", "Nickname is already in use"))
    assert isinstance(client.registration.exception(), ConnectError)


async def test_password_rejection_is_authentication_error() -> None:
    client = _client(password="wrong")
    await client.on_raw_464(_message("464", "bot", "Password incorrect"))
    error = client.registration.exception()
    assert isinstance(error, AuthenticationError)
    assert "Password incorrect" in str(error)


async def test_server_error_during_registration() -> None:
    client = _client()
    client.disconnect = AsyncMock()  # type: ignore[method-assign]
    await client.on_raw_error(_message("ERROR", "Closing Link: (Bad password)"))
    assert isinstance(client.registration.exception(), AuthenticationError)
    client.disconnect.assert_awaited_once_with(expected=False)

    other = _client()
    other.disconnect = AsyncMock()  # type: ignore[method-assign]
    await other.on_raw_error(_message("ERROR", "Closing Link: timeout"))
    error = other.registration.exception()
    assert isinstance(error, ConnectError) and not isinstance(error, AuthenticationError)


async def test_channel_callbacks_become_events() -> None:
    client = _client()
    await client.on_join("#chat", "bot")
    await client.on_join("#chat", "alice")
    await client.on_channel_message("#chat", "alice", "hello bot")
    await client.on_channel_message("#chat", "BOT", "my own echo")
    await client.on_ctcp_action("alice", "#chat", "waves")
    await client.on_ctcp_action("alice", "bot", "waves privately")
    await client.on_raw_474(_message("474", "bot", "#banned", "Cannot join channel (+b)"))

    assert _drain(client) == [
        Joined(channel="#chat"),
        Message(nick="alice", channel="#chat", text="hello bot"),
        Message(nick="alice", channel="#chat", text="* alice waves"),
        JoinFailed(channel="#banned", reason="474: Cannot join channel (+b)"),
    ]


async def test_ping_is_answered_before_the_event() -> None:
    client = _client()
    pong = AsyncMock()
    with patch.object(pydle.Client, "on_raw_ping", pong):
        await client.on_raw_ping(_message("PING", "keepalive"))
    pong.assert_awaited_once()
    assert _drain(client) == [Ping(token="keepalive")]


async def test_nick_change_is_tracked() -> None:
    client = _client()
    await client.on_nick_change("bot", "bot2")
    await client.on_nick_change("alice", "alice2")
    assert client.current_nick == "bot2"


async def test_disconnect_ends_registration_and_stream() -> None:
    client = _client()
    await client.on_disconnect(expected=False)
    await client.on_channel_message("#chat", "alice", "too late")

    assert isinstance(client.registration.exception(), ConnectError)
    assert _drain(client) == [Disconnected(reason="server closed the connection")]


# ── IRCConnection ────────────────────────────────────────────────────────


async def test_events_stream_ends_with_disconnected_and_is_not_restartable() -> None:
    client = _client()
    conn = IRCConnection(client)
    await client.on_join("#chat", "bot")
    await client.on_disconnect(expected=True)

    events = [event async for event in conn.events()]
    assert events == [Joined(channel="#chat"), Disconnected(reason="closed locally")]
    with pytest.raises(RuntimeError):
        conn.events()


async def test_send_maps_commands_and_strips_line_breaks() -> None:
    client = _client()
    conn = IRCConnection(client)

    await conn.send(Join(channel="#chat"))
    await conn.send(PrivMsg(target="#chat", text="line one\nline two"))

    assert [c.args for c in client.rawmsg.await_args_list] == [
        ("JOIN", "#chat"),
        ("PRIVMSG", "#chat", "line one line two"),
    ]


async def test_send_failure_and_closed_connection_raise_send_error() -> None:
    client = _client()
    client.rawmsg.side_effect = ConnectionResetError("gone")
    client.disconnect = AsyncMock()  # type: ignore[method-assign]
    conn = IRCConnection(client)

    with pytest.raises(SendError):
        await conn.send(PrivMsg(target="#chat", text="hi"))

    client.rawmsg.side_effect = None
    await conn.close("bye")
    await conn.close("again")
    client.rawmsg.assert_awaited_with("QUIT", "bye")
    client.disconnect.assert_awaited_once_with(expected=True)
    with pytest.raises(SendError):
        await conn.send(PrivMsg(target="#chat", text="too late"))


async def test_unreachable_server_is_connect_error() -> None:
    server = await asyncio.start_server(lambda reader, writer: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()

    with pytest.raises(ConnectError):
        await IRCConnection.open(_config(port=port))
