import json
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest

from llmirc.config.schema import Config, ModelConfig
from llmirc.core.errors import (
    ConfigError,
    MalformedResponseError,
    ModelTimeoutError,
    RateLimitedError,
    UnauthorizedError,
    UnreachableError,
)
from llmirc.core.models import ContextWindow, Identity, Turn
from llmirc.providers.chat_completions import (
    DEFAULT_NUDGE,
    ChatCompletionsClient,
    build_messages,
    clean_reply,
)
from llmirc.providers.factory import ProviderFactory
from llmirc.providers.openai_compatible import (
    OpenAICompatibleCredentials,
    resolve_openai_compatible_credentials,
)

CREDS = OpenAICompatibleCredentials(
    api_key="sk-test",
    api_base="https://llm.example/api/v1",
    extra_headers={"X-Title": "llmirc"},
    source="test",
)

WINDOW = ContextWindow(
    (
        Turn(speaker=Identity(nick="alice"), text="hi bot", timestamp=datetime(2024, 1, 1, tzinfo=UTC)),
        Turn(
            speaker=Identity(nick="bot", kind="self"),
            text="hello alice",
            timestamp=datetime(2024, 1, 1, 0, 0, 5, tzinfo=UTC),
        ),
    )
)


def _client(handler: Any) -> ChatCompletionsClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ChatCompletionsClient(credentials=CREDS, model="test/model", nickname="bot", client=http)


def _ok(content: str) -> dict[str, Any]:
    return {
        "model": "test/model",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3},
    }


def test_build_messages_maps_roles() -> None:
    messages = build_messages("system text", WINDOW)
    assert messages == [
        {"role": "system", "content": "system text"},
        {"role": "user", "content": "alice - hi bot"},
        {"role": "assistant", "content": "hello alice"},
    ]


def test_build_messages_adds_nudge_for_empty_window() -> None:
    messages = build_messages("sys", ContextWindow())
    assert messages[-1] == {"role": "user", "content": DEFAULT_NUDGE}
    led = build_messages("sys", WINDOW, nudge="start a topic")
    assert led[-1] == {"role": "user", "content": "start a topic"}


def test_clean_reply_flattens_and_strips_echoed_nick() -> None:
    assert clean_reply("line one\nline `two`", "bot") == "line one line two"
    assert clean_reply("bot - sure thing", "bot") == "sure thing"
    assert clean_reply("<bot> sure", "bot") == "sure"
    assert clean_reply("robot - stays", "bot") == "robot - stays"


async def test_complete_success_sends_expected_request() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["title"] = request.headers.get("x-title")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_ok("hey\nthere `alice`"))

    client = _client(handler)
    turn = await client.complete("sys", WINDOW)
    assert turn.text == "hey there alice"
    assert turn.model == "test/model"
    assert turn.tokens_prompt == 12
    assert turn.tokens_completion == 3
    assert seen["url"] == "https://llm.example/api/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["title"] == "llmirc"
    assert seen["body"]["model"] == "test/model"
    assert seen["body"]["messages"][0] == {"role": "system", "content": "sys"}


@pytest.mark.parametrize(
    ("status", "error_type"),
    [
        (401, UnauthorizedError),
        (403, UnauthorizedError),
        (408, ModelTimeoutError),
        (400, MalformedResponseError),
        (502, UnreachableError),
    ],
)
async def test_complete_maps_http_errors(status: int, error_type: type[Exception]) -> None:
    client = _client(lambda request: httpx.Response(status, text="nope"))
    with pytest.raises(error_type):
        await client.complete("sys", WINDOW)


async def test_complete_rate_limited_carries_retry_after() -> None:
    client = _client(lambda request: httpx.Response(429, headers={"Retry-After": "12"}, text="slow"))
    with pytest.raises(RateLimitedError) as excinfo:
        await client.complete("sys", WINDOW)
    assert excinfo.value.retry_after == 12.0


async def test_complete_timeout_and_unreachable() -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ModelTimeoutError):
        await _client(timeout).complete("sys", WINDOW)
    with pytest.raises(UnreachableError):
        await _client(refused).complete("sys", WINDOW)


@pytest.mark.parametrize(
    "body",
    [
        {"choices": []},
        {"choices": [{"message": {"content": None}}]},
        {"choices": [{"message": {"content": "  \n "}}]},
        ["not", "an", "object"],
        {"choices": [{"message": {"content": "hi"}}], "usage": {"prompt_tokens": "lots"}},
    ],
)
async def test_complete_rejects_malformed_bodies(body: Any) -> None:
    client = _client(lambda request: httpx.Response(200, json=body))
    with pytest.raises(MalformedResponseError):
        await client.complete("sys", WINDOW)


async def test_complete_maps_error_object_in_body() -> None:
    body = {"error": {"code": 401, "message": "No auth credentials found"}}
    client = _client(lambda request: httpx.Response(200, json=body))
    with pytest.raises(UnauthorizedError):
        await client.complete("sys", WINDOW)


def test_credentials_require_env_var() -> None:
    config = ModelConfig(api_key_env="TEST_LLM_KEY")
    with pytest.raises(ConfigError):
        resolve_openai_compatible_credentials(config, environ={})
    creds = resolve_openai_compatible_credentials(config, environ={"TEST_LLM_KEY": " k "})
    assert creds.api_key == "k"
    assert creds.source == "env:TEST_LLM_KEY"
    assert creds.extra_headers == {"X-Title": "llmirc"}


def test_factory_builds_client_for_configured_model() -> None:
    config = Config(model={"model": "some/model", "api_key_env": "TEST_LLM_KEY"})
    client = ProviderFactory(config).create_chat_client(environ={"TEST_LLM_KEY": "secret"})
    assert client.model == "some/model"
    assert client.api_url == "https://openrouter.ai/api/v1/chat/completions"


async def test_complete_maps_undecodable_body_to_unreachable() -> None:
    def broken_gzip(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-encoding": "gzip"}, content=b"not gzip")

    with pytest.raises(UnreachableError):
        await _client(broken_gzip).complete("sys", WINDOW)


async def test_complete_strips_the_current_nick_not_the_configured_one() -> None:
    client = _client(lambda request: httpx.Response(200, json=_ok("bot_: sure thing")))
    turn = await client.complete("sys", WINDOW, nickname="bot_")
    assert turn.text == "sure thing"

    default = await client.complete("sys", WINDOW)
    assert default.text == "bot_: sure thing"
