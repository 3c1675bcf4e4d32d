"""Google Gemini LLM provider implementation."""

from __future__ import annotations

import base64
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

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


def _image_part(image: bytes | str) -> genai_types.Part:
    mime_type = "image/png"
    if isinstance(image, str):
        data = image
        if image.startswith("data:") and "," in image:
            header, data = image.split(",", 1)
            mime_type = header[5:].split(";", 1)[0] or mime_type
        raw = base64.b64decode(data)
    else:
        raw = image
    return genai_types.Part.from_bytes(data=raw, mime_type=mime_type)


def to_gemini_contents(
    messages: list[ChatMessage],
) -> tuple[list[genai_types.Content], str | None]:
    """Convert ChatMessages into Gemini contents and a system instruction."""
    contents: list[genai_types.Content] = []
    system_parts: list[str] = []

    for m in messages:
        if m.role == "system":
            if (m.content or "").strip():
                system_parts.append(m.content.strip())
            continue
        parts: list[genai_types.Part] = []
        if m.role == "tool":
            parts.append(
                genai_types.Part(
                    function_response=genai_types.FunctionResponse(
                        id=m.tool_call_id,
                        name=m.name or "",
                        response={"result": m.content or ""},
                    )
                )
            )
        else:
            if m.content:
                parts.append(genai_types.Part(text=m.content))
            for img in m.images or []:
                parts.append(_image_part(img))
            for tc in m.tool_calls or []:
                parts.append(
                    genai_types.Part(
                        function_call=genai_types.FunctionCall(
                            id=tc.id, name=tc.name, args=tc.arguments or {}
                        )
                    )
                )
        if not parts:
            continue
        role = "model" if m.role == "assistant" else "user"
        contents.append(genai_types.Content(role=role, parts=parts))

    return contents, "\n\n".join(system_parts) or None


def to_gemini_tools(tools: list[ChatTool] | None) -> list[genai_types.Tool] | None:
    """Convert ChatTools into a single Gemini Tool of function declarations."""
    if not tools:
        return None
    declarations = [
        genai_types.FunctionDeclaration(
            name=t.name,
            description=t.description,
            parameters=t.parameters,
        )
        for t in tools
    ]
    return [genai_types.Tool(function_declarations=declarations)]


def _collect_parts(candidates: Any) -> tuple[str, list[ChatToolCall], Any]:
    text_parts: list[str] = []
    tool_calls: list[ChatToolCall] = []
    finish_reason = None
    for cand in candidates or []:
        finish_reason = getattr(cand, "finish_reason", None) or finish_reason
        content = getattr(cand, "content", None)
        for part in getattr(content, "parts", None) or []:
            if getattr(part, "text", None) and not getattr(part, "thought", False):
                text_parts.append(part.text)
            fc = getattr(part, "function_call", None)
            if fc:
                tool_calls.append(
                    ChatToolCall(
                        id=getattr(fc, "id", None) or new_call_id(),
                        name=fc.name or "",
                        arguments=parse_arguments(fc.args),
                    )
                )
    return "".join(text_parts), tool_calls, finish_reason


def map_stop_reason(finish_reason: Any, has_tool_calls: bool) -> StopReason:
    if has_tool_calls:
        return "tool_use"
    reason = getattr(finish_reason, "value", finish_reason)
    if reason == "MAX_TOKENS":
        return "max_tokens"
    return "end_turn"


class GeminiProvider(LLMProvider):
    """Gemini provider using the google-genai SDK."""

    name = "gemini"

    def __init__(self, default_model: str = "gemini-2.5-flash", api_key: str | None = None) -> None:
        super().__init__(default_model)
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY", "")
        self._client: genai.Client | None = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise ProviderAuthenticationError(
                    "Gemini API key is required. Set GOOGLE_API_KEY or pass api_key."
                )
            self._client = genai.Client(
                api_key=self.api_key,
                http_options={"api_version": "v1beta"},
            )
        return self._client

    def _build_call(self, request: ChatRequest) -> dict[str, Any]:
        contents, system_instruction = to_gemini_contents(request.messages)
        config_args: dict[str, Any] = {}
        gemini_tools = to_gemini_tools(request.tools)
        if gemini_tools:
            config_args["tools"] = gemini_tools
            config_args["tool_config"] = genai_types.ToolConfig(
                function_calling_config=genai_types.FunctionCallingConfig(
                    mode=genai_types.FunctionCallingConfigMode.AUTO
                )
            )
            config_args["automatic_function_calling"] = (
                genai_types.AutomaticFunctionCallingConfig(disable=True)
            )
        if system_instruction:
            config_args["system_instruction"] = system_instruction
        return {
            "model": self.resolve_model(request),
            "contents": contents,
            "config": genai_types.GenerateContentConfig(**config_args),
        }

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Non-streaming chat using Gemini generate_content."""
        call = self._build_call(request)
        logger.debug("gemini generate_content model=%s contents=%d", call["model"], len(call["contents"]))
        try:
            resp = await self._get_client().aio.models.generate_content(**call)
        except Exception as e:
            raise self.translate_error(e, call["model"]) from e

        text, tool_calls, finish_reason = _collect_parts(getattr(resp, "candidates", None))
        return ChatResponse(
            message=ChatMessage(role="assistant", content=text, tool_calls=tool_calls or None),
            stop_reason=map_stop_reason(finish_reason, bool(tool_calls)),
        )

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        """Streaming chat for Gemini; yields text deltas and a terminal chunk."""
        call = self._build_call(request)
        logger.debug("gemini stream model=%s contents=%d", call["model"], len(call["contents"]))
        tool_calls: list[ChatToolCall] = []
        try:
            stream = await self._get_client().aio.models.generate_content_stream(**call)
            async for chunk in stream:
                text, calls, _ = _collect_parts(getattr(chunk, "candidates", None))
                if text:
                    yield ChatChunk(delta=text)
                tool_calls.extend(calls)
        except ProviderError:
            raise
        except Exception as e:
            raise self.translate_error(e, call["model"]) from e
        yield ChatChunk(delta="", tool_calls=tool_calls)

    def translate_error(self, error: BaseException, model: str | None = None) -> ProviderError:
        model = model or self.default_model
        if isinstance(error, ProviderError):
            return error
        if isinstance(error, genai_errors.APIError):
            message = error.message or str(error)
            logger.warning("gemini error code=%s: %s", error.code, message)
            if error.code in (401, 403):
                return ProviderAuthenticationError(f"Gemini authentication failed: {message}", error)
            if error.code == 429:
                return ProviderRateLimitError(f"Gemini rate limited: {message}", None, error)
            if error.code == 404:
                return ProviderModelNotFoundError(
                    model, f"Model {model} not found in Gemini: {message}", error
                )
            if isinstance(error, genai_errors.ServerError):
                return ProviderError(f"Gemini service error: {message}", error)
            return ProviderError(f"Gemini error: {message}", error)
        return ProviderError(str(error) or type(error).__name__, error)
