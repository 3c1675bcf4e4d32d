"""Provider configuration records and the providers.json loader."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class ConfigError(ValueError):
    """Raised when a provider configuration cannot be loaded or resolved."""


class ModelEntry(BaseModel):
    """A model exposed by a provider: human-readable name plus technical key."""

    name: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)


class BaseProviderConfig(BaseModel):
    """Fields shared by every provider record."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(..., min_length=1)
    models: list[ModelEntry]
    default_model: str = Field(..., alias="defaultModel", min_length=1)

    @model_validator(mode="after")
    def _check_models(self) -> "BaseProviderConfig":
        if not self.models:
            raise ValueError(
                f'Provider "{self.name}" must have at least one model in the models array'
            )
        seen: set[str] = set()
        for m in self.models:
            if m.key in seen:
                raise ValueError(
                    f'Provider "{self.name}" has duplicate model key: "{m.key}". '
                    "Model keys must be unique within a provider."
                )
            seen.add(m.key)
        if self.default_model not in seen:
            raise ValueError(
                f'Provider "{self.name}" defaultModel "{self.default_model}" not found in '
                f"models list. Available: {', '.join(m.key for m in self.models)}"
            )
        return self

    def model_keys(self) -> list[str]:
        return [m.key for m in self.models]


class OllamaProviderConfig(BaseProviderConfig):
    type: Literal["ollama"] = "ollama"
    host: str | None = None


class BedrockProviderConfig(BaseProviderConfig):
    type: Literal["bedrock"] = "bedrock"
    region: str | None = None


class OpenRouterProviderConfig(BaseProviderConfig):
    type: Literal["openrouter"] = "openrouter"
    api_key: str | None = Field(None, alias="apiKey")
    http_referer: str | None = Field(None, alias="httpReferer")
    x_title: str | None = Field(None, alias="xTitle")


class GeminiProviderConfig(BaseProviderConfig):
    type: Literal["gemini"] = "gemini"
    api_key: str | None = Field(None, alias="apiKey")


ProviderConfig = Annotated[
    Union[
        OllamaProviderConfig,
        BedrockProviderConfig,
        OpenRouterProviderConfig,
        GeminiProviderConfig,
    ],
    Field(discriminator="type"),
]


class ProvidersConfig(BaseModel):
    """Multi-provider configuration: a default provider name plus provider records."""

    model_config = ConfigDict(frozen=True)

    default: str
    providers: list[ProviderConfig]

    @model_validator(mode="after")
    def _check_providers(self) -> "ProvidersConfig":
        seen: set[str] = set()
        for p in self.providers:
            if p.name in seen:
                raise ValueError(
                    f'Duplicate provider name: "{p.name}". Provider names must be unique.'
                )
            seen.add(p.name)
        if self.default not in seen:
            raise ValueError(
                f'Default provider "{self.default}" not found in providers list. '
                f"Available: {', '.join(p.name for p in self.providers)}"
            )
        return self

    def provider_names(self) -> list[str]:
        return [p.name for p in self.providers]


def parse_providers_config(raw: dict[str, Any]) -> ProvidersConfig:
    """Validate an already-decoded configuration mapping."""
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a JSON object")
    if "providers" not in raw:
        raise ConfigError('Configuration must include a "providers" array')
    if "default" not in raw:
        raise ConfigError(
            'Configuration must include a "default" field specifying default provider'
        )
    try:
        return ProvidersConfig.model_validate(raw)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"Invalid provider configuration: {details}") from e


def load_providers_config(path: str | Path) -> ProvidersConfig:
    """Load and validate providers.json."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file: {e}") from e
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in configuration file: {e}") from e
    return parse_providers_config(raw)


def resolve_provider(config: ProvidersConfig, provider_name: str | None = None) -> ProviderConfig:
    """Find a provider record by name, falling back to ``config.default``."""
    name = provider_name or config.default
    for p in config.providers:
        if p.name == name:
            return p
    raise ConfigError(
        f'Unknown provider: "{name}". Available providers: {", ".join(config.provider_names())}'
    )


def resolve_model_key(provider: BaseProviderConfig, model_key: str | None = None) -> str:
    """Validate a model key against the provider, falling back to its default model."""
    key = model_key or provider.default_model
    if key not in provider.model_keys():
        raise ConfigError(
            f'Invalid model key: "{key}" for provider "{provider.name}". '
            f"Available models: {', '.join(provider.model_keys())}"
        )
    return key


__all__ = [
    "ConfigError",
    "ModelEntry",
    "BaseProviderConfig",
    "OllamaProviderConfig",
    "BedrockProviderConfig",
    "OpenRouterProviderConfig",
    "GeminiProviderConfig",
    "ProviderConfig",
    "ProvidersConfig",
    "parse_providers_config",
    "load_providers_config",
    "resolve_provider",
    "resolve_model_key",
]
