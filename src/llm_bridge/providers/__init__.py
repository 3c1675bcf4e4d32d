"""LLM providers: pluggable backends behind one chat interface."""

from .base import LLMProvider, ToolCallAccumulator
from .bedrock import BedrockProvider
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openrouter import OpenRouterProvider

__all__ = [
    "LLMProvider",
    "ToolCallAccumulator",
    "OllamaProvider",
    "BedrockProvider",
    "OpenRouterProvider",
    "GeminiProvider",
]
