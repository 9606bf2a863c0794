"""Helpers for OpenAI-compatible HTTP credentials."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from llmirc.config.schema import ModelConfig
from llmirc.core.errors import ConfigError

OPENROUTER_HOST = "openrouter.ai"


@dataclass(frozen=True, slots=True)
class OpenAICompatibleCredentials:
    api_key: str
    api_base: str
    extra_headers: dict[str, str] | None
    source: str


def resolve_openai_compatible_credentials(
    config: ModelConfig,
    environ: Mapping[str, str] | None = None,
) -> OpenAICompatibleCredentials:
    """Read the API key named by ``config.api_key_env`` from the environment.

    Raises:
        ConfigError: The variable is unset or blank.
    """
    env = os.environ if environ is None else environ
    name = config.api_key_env.strip()
    if not name:
        raise ConfigError("model.apiKeyEnv must name an environment variable")
    api_key = (env.get(name) or "").strip()
    if not api_key:
        raise ConfigError(f"Missing API credential: set the {name} environment variable")

    api_base = config.api_base.rstrip("/")
    headers = dict(config.extra_headers or {})
    if OPENROUTER_HOST in api_base:
        headers.setdefault("X-Title", "llmirc")
    return OpenAICompatibleCredentials(
        api_key=api_key,
        api_base=api_base,
        extra_headers=headers or None,
        source=f"env:{name}",
    )
