"""Typed core domain and orchestration primitives."""

from llmirc.core.errors import (
    AuthenticationError,
    ConfigError,
    ConnectError,
    MalformedResponseError,
    ModelError,
    ModelTimeoutError,
    RateLimitedError,
    SendError,
    TransportError,
    UnauthorizedError,
    UnreachableError,
)
from llmirc.core.models import (
    ConnectionState,
    ContextWindow,
    GeneratedTurn,
    Identity,
    Turn,
)

__all__ = [
    "AuthenticationError",
    "ConfigError",
    "ConnectError",
    "ConnectionState",
    "ContextWindow",
    "GeneratedTurn",
    "Identity",
    "MalformedResponseError",
    "ModelError",
    "ModelTimeoutError",
    "RateLimitedError",
    "SendError",
    "TransportError",
    "Turn",
    "UnauthorizedError",
    "UnreachableError",
]
