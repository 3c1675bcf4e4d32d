"""Provider factory: the only place that knows the concrete provider classes."""

from __future__ import annotations

from .config import (
    BedrockProviderConfig,
    GeminiProviderConfig,
    OllamaProviderConfig,
    OpenRouterProviderConfig,
    ProviderConfig,
)
from .providers import (
    BedrockProvider,
    GeminiProvider,
    LLMProvider,
    OllamaProvider,
    OpenRouterProvider,
)

PROVIDER_TYPES = ("bedrock", "gemini", "ollama", "openrouter")


def create_provider(config: ProviderConfig, model_key: str | None = None) -> LLMProvider:
    """Instantiate the provider described by ``config``.

    ``model_key`` overrides the record's ``default_model`` as the provider's
    default model; it is not validated here (see ``resolve_model_key``).
    """
    provider_type = getattr(config, "type", None)
    if isinstance(config, OllamaProviderConfig):
        return OllamaProvider(default_model=model_key or config.default_model, host=config.host)
    if isinstance(config, BedrockProviderConfig):
        return BedrockProvider(
            default_model=model_key or config.default_model, region=config.region
        )
    if isinstance(config, OpenRouterProviderConfig):
        return OpenRouterProvider(
            default_model=model_key or config.default_model,
            api_key=config.api_key,
            http_referer=config.http_referer,
            x_title=config.x_title,
        )
    if isinstance(config, GeminiProviderConfig):
        return GeminiProvider(default_model=model_key or config.default_model, api_key=config.api_key)
    raise ValueError(
        f'Unknown provider type: "{provider_type}". Valid providers: {", ".join(PROVIDER_TYPES)}'
    )


__all__ = ["PROVIDER_TYPES", "create_provider"]
