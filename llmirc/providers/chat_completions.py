"""Stateless chat-completions client for OpenAI-compatible gateways."""

from __future__ import annotations

import re
import time
from typing import Any

import httpx
from loguru import logger

from llmirc.core.errors import (
    MalformedResponseError,
    ModelError,
    ModelTimeoutError,
    RateLimitedError,
    UnauthorizedError,
    UnreachableError,
)
from llmirc.core.models import ContextWindow, GeneratedTurn, Turn
from llmirc.providers.openai_compatible import OpenAICompatibleCredentials

DEFAULT_NUDGE = "Say something to the channel."


def format_turn(turn: Turn) -> dict[str, str]:
    """Map one turn onto a chat message. Own turns are the assistant's."""
    if turn.speaker.kind == "self":
        return {"role": "assistant", "content": turn.text}
    return {"role": "user", "content": f"{turn.speaker.nick} - {turn.text}"}


def build_messages(
    system_prompt: str,
    window: ContextWindow,
    *,
    nudge: str | None = None,
) -> list[dict[str, str]]:
    """Build the request message list: system prompt, window turns, optional nudge."""
    messages: list[dict[str, str]] = [{"role": "system", "content": system_prompt}]
    messages.extend(format_turn(turn) for turn in window)
    if nudge or len(window) == 0:
        messages.append({"role": "user", "content": nudge or DEFAULT_NUDGE})
    return messages


def clean_reply(text: str, nickname: str | None = None) -> str:
    """Flatten a model reply to one IRC-safe line."""
    flat = " ".join(text.replace("`", "").split())
    if nickname:
        echo = re.compile(
            rf"^(?:<{re.escape(nickname)}>|{re.escape(nickname)}\s*(?:-|:))\s*",
            re.IGNORECASE,
        )
        flat = echo.sub("", flat, count=1)
    return flat.strip()


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class ChatCompletionsClient:
    """One network attempt per :meth:`complete` call; retry policy belongs to the caller."""

    def __init__(
        self,
        *,
        credentials: OpenAICompatibleCredentials,
        model: str,
        nickname: str | None = None,
        max_tokens: int = 256,
        temperature: float = 0.8,
        timeout_seconds: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.credentials = credentials
        self.model = model
        self.nickname = nickname
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self.api_url = credentials.api_base.rstrip("/") + "/chat/completions"
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.credentials.api_key}",
            "Content-Type": "application/json",
            **(self.credentials.extra_headers or {}),
        }

    async def complete(
        self,
        system_prompt: str,
        window: ContextWindow,
        *,
        nudge: str | None = None,
        nickname: str | None = None,
    ) -> GeneratedTurn:
        """Request one completion for ``window``.

        ``nickname`` is the bot's current nick, stripped when the model echoes it;
        it defaults to the nick the client was built with.

        Raises:
            ModelError: One of RateLimitedError, UnauthorizedError,
                ModelTimeoutError, MalformedResponseError, UnreachableError.
        """
        payload = {
            "model": self.model,
            "messages": build_messages(system_prompt, window, nudge=nudge),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        started = time.perf_counter()
        try:
            response = await self._client.post(
                self.api_url,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise ModelTimeoutError(f"Model request timed out after {self.timeout_seconds}s") from e
        except httpx.HTTPError as e:
            raise UnreachableError(f"Model endpoint unreachable: {e}") from e
        latency_ms = (time.perf_counter() - started) * 1000.0

        self._raise_for_status(response)
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("Model response is not JSON") from e
        return self._parse(data, latency_ms, nickname or self.nickname)

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        detail = response.text[:200]
        if status == 429:
            raise RateLimitedError(f"Rate limited: {detail}", retry_after=_retry_after(response))
        if status in (401, 403):
            raise UnauthorizedError(f"Unauthorized ({status}): {detail}")
        if status == 408:
            raise ModelTimeoutError(f"Upstream timeout: {detail}")
        if status >= 500:
            raise UnreachableError(f"Model endpoint failed ({status}): {detail}")
        raise MalformedResponseError(f"Request rejected ({status}): {detail}")

    def _parse(self, data: Any, latency_ms: float, nickname: str | None) -> GeneratedTurn:
        if not isinstance(data, dict):
            raise MalformedResponseError("Model response root is not an object")

        error = data.get("error")
        if isinstance(error, dict):
            raise self._error_from_body(error)

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise MalformedResponseError("Model response has no choices")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise MalformedResponseError("Model response has no text content")

        text = clean_reply(content, nickname)
        if not text:
            raise MalformedResponseError("Model returned an empty reply")

        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        try:
            tokens_prompt = int(usage.get("prompt_tokens") or 0)
            tokens_completion = int(usage.get("completion_tokens") or 0)
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"Model response has invalid usage: {usage!r}") from e
        logger.debug("Model {} replied in {:.0f}ms ({} chars)", self.model, latency_ms, len(text))
        return GeneratedTurn(
            text=text,
            model=str(data.get("model") or self.model),
            latency_ms=latency_ms,
            tokens_prompt=tokens_prompt,
            tokens_completion=tokens_completion,
        )

    @staticmethod
    def _error_from_body(error: dict[str, Any]) -> ModelError:
        message = str(error.get("message") or "provider error")
        try:
            code = int(error.get("code") or 0)
        except (TypeError, ValueError):
            code = 0
        if code == 429:
            return RateLimitedError(message)
        if code in (401, 403):
            return UnauthorizedError(message)
        if code == 408:
            return ModelTimeoutError(message)
        if code >= 500:
            return UnreachableError(message)
        return MalformedResponseError(message)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
