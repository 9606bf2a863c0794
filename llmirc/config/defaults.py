"""Centralized defaults for generated config files and CLI flags."""

from __future__ import annotations

from typing import Any

DEFAULT_SERVER = "irc.libera.chat"
DEFAULT_PORT = 6667
DEFAULT_CHANNEL = "#chat_0098"
DEFAULT_NICKNAME = "bot"
DEFAULT_MODEL = "meta-llama/llama-3.1-8b-instruct"
DEFAULT_API_BASE = "https://openrouter.ai/api/v1"
DEFAULT_API_KEY_ENV = "OPENROUTER_API_KEY"

DEFAULT_SYSTEM_PROMPT = (
    "You are {nick}, a participant in the IRC channel {channel}. "
    "Lines from other participants are prefixed with their nickname. "
    "Reply with one short, plain-text IRC message. No markdown, no code blocks."
)

DEFAULT_LEAD_PROMPT = (
    "The channel has gone quiet. Start a new conversation with one short, "
    "interesting plain-text message."
)

DEFAULT_CONVERSATION: dict[str, Any] = {
    "capacity": 200,
    "retention_seconds": 3600,
    "window_turns": 30,
    "window_seconds": 1800,
    "coalesce_ms": 1000,
}

DEFAULT_TRIGGER: dict[str, Any] = {
    "lead": False,
    "respond_to_all": False,
    "idle_threshold_seconds": 120.0,
    "lead_jitter_seconds": 15.0,
}

DEFAULT_LOOP_GUARD: dict[str, Any] = {
    "suspect_after": 3,
    "suppress_margin": 2,
    "cooldown_seconds": 600.0,
}

DEFAULT_RATE_LIMIT: dict[str, Any] = {
    "max_messages": 10,
    "window_seconds": 60.0,
}
