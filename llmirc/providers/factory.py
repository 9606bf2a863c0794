"""Factory helpers for model client construction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from llmirc.providers.chat_completions import ChatCompletionsClient
from llmirc.providers.openai_compatible import resolve_openai_compatible_credentials

if TYPE_CHECKING:
    from collections.abc import Mapping

    from llmirc.config.schema import Config


@dataclass(slots=True)
class ProviderFactory:
    """Build model clients from the root config."""

    config: "Config"

    def create_chat_client(self, environ: "Mapping[str, str] | None" = None) -> ChatCompletionsClient:
        """Create a client bound to the configured model. Raises ConfigError without a key."""
        model_cfg = self.config.model
        credentials = resolve_openai_compatible_credentials(model_cfg, environ)
        return ChatCompletionsClient(
            credentials=credentials,
            model=model_cfg.model,
            nickname=self.config.irc.nickname,
            max_tokens=model_cfg.max_tokens,
            temperature=model_cfg.temperature,
            timeout_seconds=model_cfg.timeout_seconds,
        )
