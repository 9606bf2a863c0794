"""Error taxonomy shared by transport, model client and startup code."""

from __future__ import annotations


class TransportError(RuntimeError):
    """IRC transport failure. Retryable unless it is an authentication error."""

    retryable = True


class ConnectError(TransportError):
    """Could not open or register the IRC connection."""


class AuthenticationError(ConnectError):
    """The server rejected our credentials during registration."""

    retryable = False


class SendError(TransportError):
    """An outbound command could not be written."""


class ModelError(RuntimeError):
    """Chat-completion request failure."""

    retryable = True


class RateLimitedError(ModelError):
    """Provider asked us to slow down."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class UnauthorizedError(ModelError):
    """Provider rejected the API credential."""

    retryable = False


class ModelTimeoutError(ModelError):
    """Provider did not answer within the configured timeout."""


class MalformedResponseError(ModelError):
    """Provider answered with something we cannot use."""


class UnreachableError(ModelError):
    """Provider could not be reached or failed server-side."""


class ConfigError(ValueError):
    """Invalid or incomplete startup configuration."""
