"""AWS Bedrock LLM provider using the Converse API."""

from __future__ import annotations

import asyncio
import base64
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
)

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
from .base import LLMProvider, ToolCallAccumulator, new_call_id

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"

_AUTH_CODES = {
    "UnrecognizedClientException",
    "AccessDeniedException",
    "ExpiredTokenException",
    "InvalidSignatureException",
    "IncompleteSignature",
}
_THROTTLE_CODES = {"ThrottlingException", "TooManyRequestsException"}
_SERVICE_CODES = {
    "InternalServerException",
    "ServiceUnavailableException",
    "ModelNotReadyException",
    "ModelTimeoutException",
    "ModelStreamErrorException",
    "ModelErrorException",
}
# In-stream exception events of ConverseStream, keyed as they appear in the event dict.
_STREAM_EXCEPTIONS = {
    "internalServerException": "InternalServerException",
    "modelStreamErrorException": "ModelStreamErrorException",
    "validationException": "ValidationException",
    "throttlingException": "ThrottlingException",
    "serviceUnavailableException": "ServiceUnavailableException",
}
_IMAGE_FORMATS = {"png", "jpeg", "gif", "webp"}
_END = object()


def _image_block(image: bytes | str) -> dict[str, Any]:
    fmt = "png"
    if isinstance(image, str):
        data = image
        if image.startswith("data:") and "," in image:
            header, data = image.split(",", 1)
            media_type = header[5:].split(";", 1)[0]
            subtype = media_type.split("/", 1)[-1].lower()
            if subtype == "jpg":
                subtype = "jpeg"
            if subtype in _IMAGE_FORMATS:
                fmt = subtype
        raw = base64.b64decode(data)
    else:
        raw = image
    return {"image": {"format": fmt, "source": {"bytes": raw}}}


def _content_blocks(m: ChatMessage) -> list[dict[str, Any]]:
    if m.role == "tool":
        return [
            {
                "toolResult": {
                    "toolUseId": m.tool_call_id or new_call_id(),
                    "content": [{"text": m.content or ""}],
                    "status": "success",
                }
            }
        ]
    blocks: list[dict[str, Any]] = []
    if m.content:
        blocks.append({"text": m.content})
    for img in m.images or []:
        blocks.append(_image_block(img))
    for tc in m.tool_calls or []:
        blocks.append(
            {
                "toolUse": {
                    "toolUseId": tc.id or new_call_id(),
                    "name": tc.name,
                    "input": tc.arguments or {},
                }
            }
        )
    return blocks


def to_bedrock_messages(
    messages: list[ChatMessage],
) -> tuple[list[dict[str, Any]], list[dict[str, str]] | None]:
    """Split out the system prompt and build alternating Converse messages.

    Tool results travel as ``user`` turns; consecutive turns of the same role
    are merged because Converse requires strict alternation.
    """
    system = [{"text": m.content} for m in messages if m.role == "system" and m.content]
    out: list[dict[str, Any]] = []
    for m in messages:
        if m.role == "system":
            continue
        role = "assistant" if m.role == "assistant" else "user"
        blocks = _content_blocks(m)
        if not blocks:
            continue
        if out and out[-1]["role"] == role:
            out[-1]["content"].extend(blocks)
        else:
            out.append({"role": role, "content": blocks})
    return out, system or None


def to_bedrock_tool(tool: ChatTool) -> dict[str, Any]:
    return {
        "toolSpec": {
            "name": tool.name,
            "description": tool.description,
            "inputSchema": {"json": tool.parameters},
        }
    }


def from_bedrock_message(message: dict[str, Any]) -> ChatMessage:
    text_parts: list[str] = []
    tool_calls: list[ChatToolCall] = []
    for block in message.get("content") or []:
        if "text" in block:
            text_parts.append(block["text"])
        elif "toolUse" in block:
            tu = block["toolUse"]
            tool_calls.append(
                ChatToolCall(
                    id=tu.get("toolUseId") or new_call_id(),
                    name=tu.get("name", ""),
                    arguments=tu.get("input") or {},
                )
            )
    return ChatMessage(
        role="assistant", content="".join(text_parts), tool_calls=tool_calls or None
    )


def map_stop_reason(stop_reason: str | None) -> StopReason:
    if stop_reason in ("tool_use", "max_tokens", "stop_sequence"):
        return stop_reason  # type: ignore[return-value]
    return "end_turn"


class BedrockProvider(LLMProvider):
    """Bedrock provider; boto3 calls are blocking and run in worker threads."""

    name = "bedrock"

    def __init__(self, default_model: str, region: str | None = None) -> None:
        super().__init__(default_model)
        self.region = region or os.getenv("AWS_REGION") or DEFAULT_REGION
        self._client: Any | None = None

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("bedrock-runtime", region_name=self.region)
        return self._client

    def _build_params(self, request: ChatRequest) -> dict[str, Any]:
        messages, system = to_bedrock_messages(request.messages)
        params: dict[str, Any] = {"modelId": self.resolve_model(request), "messages": messages}
        if system:
            params["system"] = system
        if request.tools:
            params["toolConfig"] = {"tools": [to_bedrock_tool(t) for t in request.tools]}
        return params

    async def chat(self, request: ChatRequest) -> ChatResponse:
        params = self._build_params(request)
        logger.debug("bedrock converse model=%s messages=%d", params["modelId"], len(params["messages"]))
        try:
            resp = await asyncio.to_thread(self._get_client().converse, **params)
        except Exception as e:
            raise self.translate_error(e, params["modelId"]) from e

        message = (resp.get("output") or {}).get("message")
        if not message:
            raise ProviderError("No message in Bedrock response")
        return ChatResponse(
            message=from_bedrock_message(message),
            stop_reason=map_stop_reason(resp.get("stopReason")),
        )

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        params = self._build_params(request)
        model = params["modelId"]
        logger.debug("bedrock converse_stream model=%s messages=%d", model, len(params["messages"]))
        accumulator = ToolCallAccumulator()
        try:
            resp = await asyncio.to_thread(self._get_client().converse_stream, **params)
            stream = resp.get("stream")
            if stream is None:
                raise ProviderError("No stream in Bedrock response")
            events = iter(stream)
            while True:
                # Each next() is a blocking network read on the event stream.
                event = await asyncio.to_thread(next, events, _END)
                if event is _END:
                    break
                for key, code in _STREAM_EXCEPTIONS.items():
                    if key in event:
                        detail = event[key] or {}
                        raise self._from_code(code, detail.get("message", key), model, None)
                if "contentBlockStart" in event:
                    block = event["contentBlockStart"]
                    tool_use = (block.get("start") or {}).get("toolUse")
                    if tool_use:
                        accumulator.start(
                            block.get("contentBlockIndex", 0),
                            call_id=tool_use.get("toolUseId"),
                            name=tool_use.get("name"),
                        )
                elif "contentBlockDelta" in event:
                    block = event["contentBlockDelta"]
                    delta = block.get("delta") or {}
                    if delta.get("text"):
                        yield ChatChunk(delta=delta["text"])
                    elif "toolUse" in delta:
                        accumulator.add(
                            block.get("contentBlockIndex", 0),
                            arguments=delta["toolUse"].get("input"),
                        )
        except ProviderError:
            raise
        except Exception as e:
            raise self.translate_error(e, model) from e
        yield ChatChunk(delta="", tool_calls=accumulator.finalize())

    def _from_code(
        self, code: str, message: str, model: str | None, original: BaseException | None
    ) -> ProviderError:
        model = model or self.default_model
        if code in _AUTH_CODES:
            return ProviderAuthenticationError(f"Bedrock authentication failed: {message}", original)
        if code in _THROTTLE_CODES:
            return ProviderRateLimitError(f"Bedrock rate limited: {message}", None, original)
        if code == "ResourceNotFoundException" or (
            code == "ValidationException" and "model identifier" in message.lower()
        ):
            return ProviderModelNotFoundError(
                model, f"Model {model} not found in Bedrock: {message}", original
            )
        if code in _SERVICE_CODES:
            return ProviderError(f"Bedrock service error: {message}", original)
        return ProviderError(f"Bedrock error ({code}): {message}", original)

    def translate_error(self, error: BaseException, model: str | None = None) -> ProviderError:
        if isinstance(error, ProviderError):
            return error
        if isinstance(error, ClientError):
            err = error.response.get("Error") or {}
            code = err.get("Code", "")
            logger.warning("bedrock error code=%s: %s", code, err.get("Message"))
            return self._from_code(code, err.get("Message") or str(error), model, error)
        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return ProviderAuthenticationError(f"Bedrock credentials unavailable: {error}", error)
        if isinstance(error, EndpointConnectionError):
            return ProviderError(f"Failed to connect to Bedrock in {self.region}: {error}", error)
        if isinstance(error, BotoCoreError):
            return ProviderError(f"Bedrock client error: {error}", error)
        return ProviderError(str(error) or type(error).__name__, error)
