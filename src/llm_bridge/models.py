"""Provider-agnostic chat models shared by every provider and the agent."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant", "tool"]
StopReason = Literal["end_turn", "tool_use", "max_tokens", "stop_sequence"]


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ChatToolCall(BaseModel):
    """A tool invocation requested by the model."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None  # vendor-assigned call id, when the vendor has one


class ChatTool(BaseModel):
    """Function schema advertised to the model."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_function_schema(self) -> dict[str, Any]:
        """OpenAI-style function-calling schema (also accepted by Ollama)."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    """A single transcript entry."""

    role: Role
    content: str = ""
    tool_calls: list[ChatToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    images: list[bytes | str] | None = None


class ChatRequest(BaseModel):
    """Envelope sent to a provider on every model round."""

    model: str
    messages: list[ChatMessage]
    tools: list[ChatTool] | None = None


class ChatResponse(BaseModel):
    """Result of a non-streaming chat call."""

    message: ChatMessage
    stop_reason: StopReason = "end_turn"


class ChatChunk(BaseModel):
    """One streamed fragment; the terminal chunk carries reassembled tool calls."""

    delta: str = ""
    tool_calls: list[ChatToolCall] | None = None


__all__ = [
    "Role",
    "StopReason",
    "ChatToolCall",
    "ChatTool",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatChunk",
]
