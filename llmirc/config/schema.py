"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from llmirc.config.defaults import (
    DEFAULT_API_BASE,
    DEFAULT_API_KEY_ENV,
    DEFAULT_CHANNEL,
    DEFAULT_CONVERSATION,
    DEFAULT_LEAD_PROMPT,
    DEFAULT_LOOP_GUARD,
    DEFAULT_MODEL,
    DEFAULT_NICKNAME,
    DEFAULT_PORT,
    DEFAULT_RATE_LIMIT,
    DEFAULT_SERVER,
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_TRIGGER,
)


class IRCConfig(BaseModel):
    """IRC server connection settings."""

    model_config = ConfigDict(extra="ignore")

    server: str = DEFAULT_SERVER
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    tls: bool = False
    tls_verify: bool = True
    nickname: str = DEFAULT_NICKNAME
    username: str = ""  # defaults to nickname
    realname: str = "llmirc"
    password: str = ""  # server password (PASS)
    channels: list[str] = Field(default_factory=lambda: [DEFAULT_CHANNEL])
    connect_timeout_seconds: float = Field(default=20.0, gt=0)
    registration_timeout_seconds: float = Field(default=60.0, gt=0)
    max_nick_attempts: int = Field(default=3, ge=1)
    max_line_bytes: int = Field(default=400, ge=32, le=480)
    line_delay_ms: int = Field(default=100, ge=0)
    inbound_queue_size: int = Field(default=256, ge=1)
    reconnect_initial_ms: int = Field(default=1000, ge=100)
    reconnect_max_ms: int = Field(default=60000, ge=100)
    reconnect_factor: float = Field(default=2.0, ge=1.0)
    reconnect_jitter: float = Field(default=0.25, ge=0.0, le=1.0)
    reconnect_max_attempts: int = Field(default=0, ge=0)  # 0 means unlimited retries

    @field_validator("channels")
    @classmethod
    def _normalize_channels(cls, value: list[str]) -> list[str]:
        out: list[str] = []
        for raw in value:
            name = raw.strip()
            if not name:
                continue
            if name[0] not in "#&+!":
                name = f"#{name}"
            if name.lower() not in {c.lower() for c in out}:
                out.append(name)
        if not out:
            raise ValueError("irc.channels must name at least one channel")
        return out

    @property
    def resolved_username(self) -> str:
        return self.username.strip() or self.nickname


class ModelConfig(BaseModel):
    """Chat-completion backend settings."""

    model_config = ConfigDict(extra="ignore")

    model: str = DEFAULT_MODEL
    api_base: str = DEFAULT_API_BASE
    api_key_env: str = DEFAULT_API_KEY_ENV
    extra_headers: dict[str, str] | None = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    lead_prompt: str = DEFAULT_LEAD_PROMPT
    max_tokens: int = Field(default=256, ge=1)
    temperature: float = Field(default=0.8, ge=0.0, le=2.0)
    timeout_seconds: float = Field(default=60.0, gt=0)


class ConversationConfig(BaseModel):
    """Context buffer and window bounds."""

    model_config = ConfigDict(extra="ignore")

    capacity: int = Field(default=int(DEFAULT_CONVERSATION["capacity"]), ge=1)
    retention_seconds: float = Field(default=float(DEFAULT_CONVERSATION["retention_seconds"]), gt=0)
    window_turns: int = Field(default=int(DEFAULT_CONVERSATION["window_turns"]), ge=1)
    window_seconds: float = Field(default=float(DEFAULT_CONVERSATION["window_seconds"]), gt=0)
    coalesce_ms: int = Field(default=int(DEFAULT_CONVERSATION["coalesce_ms"]), ge=0)


class TriggerConfig(BaseModel):
    """When this bot speaks."""

    model_config = ConfigDict(extra="ignore")

    lead: bool = bool(DEFAULT_TRIGGER["lead"])
    respond_to_all: bool = bool(DEFAULT_TRIGGER["respond_to_all"])
    idle_threshold_seconds: float = Field(
        default=float(DEFAULT_TRIGGER["idle_threshold_seconds"]), ge=0
    )
    lead_jitter_seconds: float = Field(default=float(DEFAULT_TRIGGER["lead_jitter_seconds"]), ge=0)
    bot_nicks: list[str] = Field(default_factory=list)  # fnmatch patterns


class LoopGuardConfig(BaseModel):
    """Bot-to-bot loop detection thresholds."""

    model_config = ConfigDict(extra="ignore")

    suspect_after: int = Field(default=int(DEFAULT_LOOP_GUARD["suspect_after"]), ge=1)
    suppress_margin: int = Field(default=int(DEFAULT_LOOP_GUARD["suppress_margin"]), ge=0)
    cooldown_seconds: float = Field(default=float(DEFAULT_LOOP_GUARD["cooldown_seconds"]), gt=0)

    @property
    def suppress_after(self) -> int:
        return self.suspect_after + self.suppress_margin


class RateLimitConfig(BaseModel):
    """Outbound reply ceiling per channel."""

    model_config = ConfigDict(extra="ignore")

    max_messages: int = Field(default=int(DEFAULT_RATE_LIMIT["max_messages"]), ge=1)
    window_seconds: float = Field(default=float(DEFAULT_RATE_LIMIT["window_seconds"]), gt=0)


class Config(BaseSettings):
    """Root configuration for llmirc."""

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_prefix="LLMIRC_",
        env_nested_delimiter="__",
    )

    irc: IRCConfig = Field(default_factory=IRCConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    trigger: TriggerConfig = Field(default_factory=TriggerConfig)
    loop_guard: LoopGuardConfig = Field(default_factory=LoopGuardConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)

    @model_validator(mode="after")
    def _validate_window(self) -> "Config":
        if self.conversation.window_turns > self.conversation.capacity:
            raise ValueError("conversation.windowTurns cannot exceed conversation.capacity")
        return self

    def system_prompt_for(self, channel: str, nick: str | None = None) -> str:
        """Render the system prompt template for one channel."""
        return self.model.system_prompt.replace("{nick}", nick or self.irc.nickname).replace(
            "{channel}", channel
        )

    @property
    def data_path(self) -> Path:
        from llmirc.config.loader import get_data_path

        return get_data_path()
