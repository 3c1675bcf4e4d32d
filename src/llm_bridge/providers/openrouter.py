"""OpenRouter LLM provider (OpenAI-compatible Chat Completions gateway)."""

from __future__ import annotations

import base64
import json
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import openai
from openai import AsyncOpenAI

from ..errors import (
    ProviderAuthenticationError,
    ProviderError,
    ProviderModelNotFoundError,
    ProviderRateLimitError,
    parse_retry_after,
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
from .base import LLMProvider, ToolCallAccumulator, new_call_id, parse_arguments

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def _image_url(image: bytes | str) -> str:
    if isinstance(image, bytes):
        return "data:image/png;base64," + base64.b64encode(image).decode("ascii")
    return image


def map_stop_reason(finish_reason: str | None, has_tool_calls: bool) -> StopReason:
    if finish_reason == "tool_calls" or (has_tool_calls and finish_reason in (None, "stop")):
        return "tool_use"
    if finish_reason == "length":
        return "max_tokens"
    return "end_turn"


class OpenRouterProvider(LLMProvider):
    """OpenRouter-backed provider using the OpenAI SDK pointed at the gateway."""

    name = "openrouter"

    def __init__(
        self,
        default_model: str,
        api_key: str | None = None,
        http_referer: str | None = None,
        x_title: str | None = None,
        base_url: str | None = None,
    ) -> None:
        super().__init__(default_model)
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY") or ""
        if not self.api_key.strip():
            raise ProviderAuthenticationError(
                "OpenRouter API key is required. Set OPENROUTER_API_KEY or pass api_key."
            )
        self.base_url = base_url or OPENROUTER_BASE_URL
        self.http_referer = http_referer
        self.x_title = x_title
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            headers: dict[str, str] = {}
            if self.http_referer:
                headers["HTTP-Referer"] = self.http_referer
            if self.x_title:
                headers["X-Title"] = self.x_title
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                default_headers=headers or None,
            )
        return self._client

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    @staticmethod
    def _to_openai_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
        """Convert ChatMessage objects into OpenAI chat message dicts."""
        out: list[dict[str, Any]] = []
        for m in messages:
            content: Any = m.content or ""
            if m.images:
                content = [{"type": "text", "text": m.content or ""}] + [
                    {"type": "image_url", "image_url": {"url": _image_url(img)}}
                    for img in m.images
                ]
            base: dict[str, Any] = {"role": m.role, "content": content}
            if m.role == "assistant" and m.tool_calls:
                base["tool_calls"] = [
                    {
                        "id": tc.id or new_call_id(),
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments or {}),
                        },
                    }
                    for tc in m.tool_calls
                ]
            if m.role == "tool" and m.tool_call_id:
                base["tool_call_id"] = m.tool_call_id
            out.append(base)
        return out

    @staticmethod
    def _to_openai_tools(tools: list[ChatTool]) -> list[dict[str, Any]]:
        return [t.to_function_schema() for t in tools]

    @staticmethod
    def _parse_tool_calls(choice_message: Any) -> list[ChatToolCall]:
        """Map OpenAI tool_calls into ChatToolCall objects."""
        tool_calls: list[ChatToolCall] = []
        for tc in getattr(choice_message, "tool_calls", None) or []:
            fn = getattr(tc, "function", None)
            tool_calls.append(
                ChatToolCall(
                    id=getattr(tc, "id", None) or new_call_id(),
                    name=getattr(fn, "name", None) or "",
                    arguments=parse_arguments(getattr(fn, "arguments", None)),
                )
            )
        return tool_calls

    def _build_params(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": self.resolve_model(request),
            "messages": self._to_openai_messages(request.messages),
            "stream": stream,
        }
        if request.tools:
            params["tools"] = self._to_openai_tools(request.tools)
        return params

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Non-streaming chat using the Chat Completions endpoint."""
        params = self._build_params(request, stream=False)
        logger.debug("openrouter chat model=%s messages=%d", params["model"], len(params["messages"]))
        try:
            resp = await self._get_client().chat.completions.create(**params)
        except Exception as e:
            raise self.translate_error(e, params["model"]) from e

        if not resp.choices:
            raise ProviderError("OpenRouter returned no choices")
        choice = resp.choices[0]
        content = choice.message.content or ""
        tool_calls = self._parse_tool_calls(choice.message)
        return ChatResponse(
            message=ChatMessage(role="assistant", content=content, tool_calls=tool_calls or None),
            stop_reason=map_stop_reason(choice.finish_reason, bool(tool_calls)),
        )

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        """Streaming chat; decodes the SSE lines of the raw response."""
        params = self._build_params(request, stream=True)
        logger.debug("openrouter stream model=%s messages=%d", params["model"], len(params["messages"]))
        client = self._get_client()
        try:
            async with client.chat.completions.with_streaming_response.create(**params) as response:
                async for chunk in self.iter_sse_chunks(response.iter_lines(), params["model"]):
                    yield chunk
        except ProviderError:
            raise
        except Exception as e:
            raise self.translate_error(e, params["model"]) from e

    async def iter_sse_chunks(
        self, lines: AsyncIterator[str], model: str | None = None
    ) -> AsyncIterator[ChatChunk]:
        """Decode ``data:`` lines into ChatChunks; ends with one terminal chunk."""
        accumulator = ToolCallAccumulator()
        async for line in lines:
            line = line.strip()
            if not line or line.startswith(":") or not line.startswith("data:"):
                continue
            data = line[len("data:"):].strip()
            if data.startswith("[DONE"):
                break
            try:
                payload = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("skipping unparseable stream line: %.80s", data)
                continue
            if not isinstance(payload, dict):
                continue
            if payload.get("error"):
                raise self._stream_error(payload["error"], model)
            choices = payload.get("choices") or []
            if not choices:
                continue
            delta = choices[0].get("delta") or {}
            text = delta.get("content")
            if text:
                yield ChatChunk(delta=text)
            for tc in delta.get("tool_calls") or []:
                fn = tc.get("function") or {}
                accumulator.add(
                    tc.get("index", 0),
                    call_id=tc.get("id"),
                    name=fn.get("name"),
                    arguments=fn.get("arguments"),
                )
        yield ChatChunk(delta="", tool_calls=accumulator.finalize())

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def _stream_error(self, error: Any, model: str | None) -> ProviderError:
        if not isinstance(error, dict):
            return ProviderError(f"OpenRouter stream error: {error}")
        message = error.get("message") or "OpenRouter stream error"
        return self._from_status(error.get("code"), message, None, model, None)

    def _from_status(
        self,
        status: Any,
        message: str,
        retry_after: str | None,
        model: str | None,
        original: BaseException | None,
    ) -> ProviderError:
        model = model or self.default_model
        if status == 401:
            return ProviderAuthenticationError(f"Invalid OpenRouter API key: {message}", original)
        if status == 403:
            return ProviderAuthenticationError(f"OpenRouter access denied: {message}", original)
        if status == 429:
            return ProviderRateLimitError(
                "OpenRouter rate limit exceeded", parse_retry_after(retry_after), original
            )
        if status == 404:
            return ProviderModelNotFoundError(model, f"Model not found: {model}", original)
        if status == 402:
            return ProviderError("Insufficient OpenRouter credits", original)
        if isinstance(status, int) and 500 <= status < 600:
            return ProviderError(f"OpenRouter service error: {message}", original)
        return ProviderError(message, original)

    def translate_error(self, error: BaseException, model: str | None = None) -> ProviderError:
        if isinstance(error, ProviderError):
            return error
        if isinstance(error, openai.APIStatusError):
            logger.warning("openrouter error status=%s: %s", error.status_code, error.message)
            return self._from_status(
                error.status_code,
                error.message,
                error.response.headers.get("retry-after"),
                model,
                error,
            )
        if isinstance(error, openai.APIConnectionError):
            logger.warning("openrouter connection failure: %s", error)
            return ProviderError("Failed to connect to OpenRouter API", error)
        return ProviderError(str(error) or "OpenRouter request failed", error)
