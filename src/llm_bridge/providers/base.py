"""Abstract LLM provider interface."""

from __future__ import annotations

import json
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from ..models import ChatChunk, ChatRequest, ChatResponse, ChatToolCall


class LLMProvider(ABC):
    """
    Abstract LLM provider. Implement this to plug in any backend (Ollama, Bedrock, etc.).

    The agent only depends on this interface; vendor errors must be translated
    into ``llm_bridge.errors`` types before they leave ``chat``/``stream_chat``.
    """

    name: str = "provider"

    def __init__(self, default_model: str) -> None:
        self.default_model = default_model

    def resolve_model(self, request: ChatRequest) -> str:
        return request.model or self.default_model

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Non-streaming chat. Returns the assistant message and a normalized stop reason."""
        ...

    @abstractmethod
    def stream_chat(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        """
        Stream chat; yields text deltas followed by exactly one terminal chunk
        (empty delta) carrying the reassembled tool calls.
        """
        ...


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Decode tool-call arguments; unparseable JSON is kept under ``raw``."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {"raw": raw}
        return parsed if isinstance(parsed, dict) else {"raw": raw}
    try:
        return dict(raw)
    except (TypeError, ValueError):
        return {}


class ToolCallAccumulator:
    """Reassembles tool calls whose arguments arrive in fragments.

    Slots are keyed by the vendor's call index and only turned into
    ``ChatToolCall`` objects by ``finalize``.
    """

    def __init__(self) -> None:
        self._slots: dict[int, dict[str, Any]] = {}

    def __bool__(self) -> bool:
        return bool(self._slots)

    def start(self, index: int, *, call_id: str | None = None, name: str | None = None) -> None:
        slot = self._slots.setdefault(index, {"id": None, "name": "", "arguments": ""})
        if call_id:
            slot["id"] = call_id
        if name:
            slot["name"] = name

    def add(
        self,
        index: int,
        *,
        call_id: str | None = None,
        name: str | None = None,
        arguments: str | None = None,
    ) -> None:
        slot = self._slots.setdefault(index, {"id": None, "name": "", "arguments": ""})
        if call_id:
            slot["id"] = call_id
        if name:
            slot["name"] += name
        if arguments:
            slot["arguments"] += arguments

    def finalize(self) -> list[ChatToolCall]:
        calls = [
            ChatToolCall(
                id=slot["id"] or new_call_id(),
                name=slot["name"],
                arguments=parse_arguments(slot["arguments"]),
            )
            for _, slot in sorted(self._slots.items())
        ]
        self._slots.clear()
        return calls
