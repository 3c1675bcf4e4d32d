"""Ollama LLM provider implementation."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import httpx
from ollama import AsyncClient, ResponseError

from ..errors import (
    ProviderAuthenticationError,
    ProviderError,
    ProviderModelNotFoundError,
    ProviderRateLimitError,
)
from ..models import (
    ChatChunk,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatTool,
    ChatToolCall,
    StopReason,
)
from .base import LLMProvider, new_call_id, parse_arguments

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_HOST = "http://localhost:11434"


def _image_to_ollama(image: bytes | str) -> bytes | str:
    # Ollama takes raw bytes or bare base64; strip any data-URL header.
    if isinstance(image, str) and image.startswith("data:") and "," in image:
        return image.split(",", 1)[1]
    return image


def _message_to_chat(m: ChatMessage) -> dict[str, Any]:
    """Convert our ChatMessage to Ollama chat format."""
    out: dict[str, Any] = {"role": m.role, "content": m.content or ""}
    if m.tool_calls:
        out["tool_calls"] = [
            {"function": {"name": tc.name, "arguments": tc.arguments or {}}}
            for tc in m.tool_calls
        ]
    if m.role == "tool" and m.name:
        out["tool_name"] = m.name
    if m.images:
        out["images"] = [_image_to_ollama(img) for img in m.images]
    return out


def _tool_to_ollama(tool: ChatTool) -> dict[str, Any]:
    return tool.to_function_schema()


def _tool_call_from_ollama(tc: Any) -> ChatToolCall:
    fn = getattr(tc, "function", None)
    name = getattr(fn, "name", None) or ""
    args = getattr(fn, "arguments", None)
    return ChatToolCall(id=new_call_id(), name=name, arguments=parse_arguments(args))


def map_stop_reason(done_reason: str | None, has_tool_calls: bool) -> StopReason:
    if has_tool_calls:
        return "tool_use"
    if done_reason == "length":
        return "max_tokens"
    return "end_turn"


class OllamaProvider(LLMProvider):
    """Ollama-backed LLM provider."""

    name = "ollama"

    def __init__(self, default_model: str = "llama3.2", host: str | None = None) -> None:
        super().__init__(default_model)
        self.host = host or os.getenv("OLLAMA_HOST") or DEFAULT_OLLAMA_HOST
        self._client: AsyncClient | None = None

    def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(host=self.host)
        return self._client

    def _build_params(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": self.resolve_model(request),
            "messages": [_message_to_chat(m) for m in request.messages],
            "stream": stream,
        }
        if request.tools:
            params["tools"] = [_tool_to_ollama(t) for t in request.tools]
        return params

    async def chat(self, request: ChatRequest) -> ChatResponse:
        params = self._build_params(request, stream=False)
        logger.debug("ollama chat model=%s messages=%d", params["model"], len(params["messages"]))
        try:
            resp = await self._get_client().chat(**params)
        except Exception as e:
            raise self.translate_error(e, params["model"]) from e

        msg = resp.message
        tool_calls = [_tool_call_from_ollama(tc) for tc in (getattr(msg, "tool_calls", None) or [])]
        message = ChatMessage(
            role="assistant",
            content=getattr(msg, "content", "") or "",
            tool_calls=tool_calls or None,
        )
        return ChatResponse(
            message=message,
            stop_reason=map_stop_reason(getattr(resp, "done_reason", None), bool(tool_calls)),
        )

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        params = self._build_params(request, stream=True)
        logger.debug("ollama stream model=%s messages=%d", params["model"], len(params["messages"]))
        tool_calls: list[ChatToolCall] = []
        try:
            stream = await self._get_client().chat(**params)
            async for chunk in stream:
                msg = getattr(chunk, "message", None)
                if msg is None:
                    continue
                delta = getattr(msg, "content", None) or ""
                if delta:
                    yield ChatChunk(delta=delta)
                # Ollama delivers each tool call whole, never in fragments.
                for tc in getattr(msg, "tool_calls", None) or []:
                    tool_calls.append(_tool_call_from_ollama(tc))
        except ProviderError:
            raise
        except Exception as e:
            raise self.translate_error(e, params["model"]) from e
        yield ChatChunk(delta="", tool_calls=tool_calls)

    def translate_error(self, error: BaseException, model: str | None = None) -> ProviderError:
        model = model or self.default_model
        if isinstance(error, ProviderError):
            return error
        if isinstance(error, ResponseError):
            text = error.error or str(error)
            status = error.status_code
            logger.warning("ollama error status=%s: %s", status, text)
            if status in (401, 403):
                return ProviderAuthenticationError(f"Ollama rejected the request: {text}", error)
            if status == 429:
                return ProviderRateLimitError(f"Ollama rate limited: {text}", None, error)
            if status == 404 or "not found" in text.lower():
                return ProviderModelNotFoundError(
                    model, f"Model {model} not found: {text}", error
                )
            return ProviderError(f"Ollama error: {text}", error)
        if isinstance(error, (ConnectionError, httpx.TransportError)):
            logger.warning("ollama connection failure at %s: %s", self.host, error)
            return ProviderError(f"Failed to connect to Ollama at {self.host}: {error}", error)
        return ProviderError(str(error) or type(error).__name__, error)
