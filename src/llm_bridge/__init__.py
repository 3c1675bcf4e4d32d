"""Shared LLM layer: chat models, provider errors, configuration and providers."""

from .config import (
    ConfigError,
    ProviderConfig,
    ProvidersConfig,
    load_providers_config,
    resolve_model_key,
    resolve_provider,
)
from .errors import (
    ProviderAuthenticationError,
    ProviderError,
    ProviderModelNotFoundError,
    ProviderRateLimitError,
)
from .factory import create_provider
from .models import (
    ChatChunk,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatTool,
    ChatToolCall,
)
from .providers.base import LLMProvider

__all__ = [
    "ChatMessage",
    "ChatTool",
    "ChatToolCall",
    "ChatRequest",
    "ChatResponse",
    "ChatChunk",
    "ProviderError",
    "ProviderAuthenticationError",
    "ProviderRateLimitError",
    "ProviderModelNotFoundError",
    "ConfigError",
    "ProviderConfig",
    "ProvidersConfig",
    "load_providers_config",
    "resolve_provider",
    "resolve_model_key",
    "LLMProvider",
    "create_provider",
]
