"""Chat-completion providers."""

from llmirc.providers.chat_completions import ChatCompletionsClient
from llmirc.providers.factory import ProviderFactory
from llmirc.providers.openai_compatible import (
    OpenAICompatibleCredentials,
    resolve_openai_compatible_credentials,
)

__all__ = [
    "ChatCompletionsClient",
    "OpenAICompatibleCredentials",
    "ProviderFactory",
    "resolve_openai_compatible_credentials",
]
