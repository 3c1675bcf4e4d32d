"""Agent core: transcript ownership and the bounded tool-calling loop."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from llm_bridge.config import (
    ProvidersConfig,
    load_providers_config,
    resolve_model_key,
    resolve_provider,
)
from llm_bridge.errors import ProviderError
from llm_bridge.factory import create_provider
from llm_bridge.models import ChatChunk, ChatMessage, ChatRequest, ChatResponse, ChatTool, ChatToolCall
from llm_bridge.providers.base import LLMProvider, new_call_id

from .config import (
    DEFAULT_MAX_TOOL_ITERATIONS,
    SESSION_CONTEXT_PATH,
    TOOL_RESULT_PREVIEW_CHARS,
)
from .system_prompt_loader import build_system_prompt
from .tools import ToolRegistry, create_default_tool_registry

logger = logging.getLogger(__name__)

TokenSink = Callable[[str], None]
ToolStartCallback = Callable[[str], None]
ToolEndCallback = Callable[[str, str], None]


class AgentState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"


class AgentBusyError(RuntimeError):
    """Raised when an operation needs an idle agent but a turn is in flight."""


@dataclass
class StreamCallbacks:
    """Optional tool lifecycle hooks for ``Agent.stream_chat``.

    A hook that is provided replaces the matching bracketed status line on the
    token sink; a missing hook falls back to that status line.
    """

    on_tool_start: ToolStartCallback | None = None
    on_tool_end: ToolEndCallback | None = None


def _preview(result: str) -> str:
    if len(result) > TOOL_RESULT_PREVIEW_CHARS:
        return result[:TOOL_RESULT_PREVIEW_CHARS] + "..."
    return result


class Agent:
    """
    Drives one conversation against a pluggable provider.

    Each turn appends the user message, then alternates model round-trips and
    sequential tool execution until the model stops requesting tools or
    ``max_iterations`` rounds have run. Turns must not overlap.
    """

    def __init__(
        self,
        providers_config: ProvidersConfig | str | Path | None = None,
        *,
        provider_name: str | None = None,
        model_key: str | None = None,
        provider: LLMProvider | None = None,
        model: str | None = None,
        system_prompt: str | None = None,
        tool_registry: ToolRegistry | None = None,
        max_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS,
        session_context_path: str | Path | None = None,
        workspace_dir: str | Path | None = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if isinstance(providers_config, (str, Path)):
            providers_config = load_providers_config(providers_config)
        self._providers_config = providers_config

        if provider is not None:
            self._provider = provider
            self._model = model or provider.default_model
        elif providers_config is not None:
            self._provider, self._model = self._resolve(provider_name, model_key)
        else:
            raise ValueError(
                "Provider configuration is required. Pass providers_config (object or path) "
                "or a provider instance."
            )

        self._system_prompt = system_prompt or build_system_prompt(workspace_dir)
        self._session_context_path = Path(session_context_path or SESSION_CONTEXT_PATH)
        self._transcript: list[ChatMessage] = []
        self._state = AgentState.IDLE
        self.max_iterations = max_iterations
        self.tools = (
            tool_registry
            if tool_registry is not None
            else create_default_tool_registry(self, base_dir=workspace_dir)
        )

    # ------------------------------------------------------------------
    # Read-only state (also the ToolContext seen by tools)
    # ------------------------------------------------------------------

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    @property
    def model(self) -> str:
        return self._model

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def transcript(self) -> list[ChatMessage]:
        return self.get_context()

    @property
    def session_context_path(self) -> Path:
        return self._session_context_path

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------

    def clear_context(self) -> None:
        self._transcript = []

    def get_context(self) -> list[ChatMessage]:
        """Snapshot of the transcript; mutating it does not affect the agent."""
        return [m.model_copy(deep=True) for m in self._transcript]

    def set_system_prompt(self, prompt: str) -> None:
        self._system_prompt = prompt

    def switch_provider(self, provider_name: str, model_key: str | None = None) -> None:
        """Replace the provider between turns. The transcript is kept."""
        if self._state is not AgentState.IDLE:
            raise AgentBusyError("Cannot switch provider while a turn is in progress")
        if self._providers_config is None:
            raise ValueError("Agent was created without a providers configuration")
        self._provider, self._model = self._resolve(provider_name, model_key)
        logger.info("switched provider to %s (model=%s)", self._provider.name, self._model)

    def _resolve(self, provider_name: str | None, model_key: str | None) -> tuple[LLMProvider, str]:
        assert self._providers_config is not None
        provider_config = resolve_provider(self._providers_config, provider_name)
        key = resolve_model_key(provider_config, model_key)
        return create_provider(provider_config, key), key

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def get_tools(self) -> list[ChatTool]:
        return self.tools.get_enabled_schemas()

    def get_tool_names(self) -> list[str]:
        return self.tools.get_tool_names()

    def is_tool_enabled(self, name: str) -> bool:
        return self.tools.is_tool_enabled(name)

    def enable_tool(self, name: str) -> None:
        self.tools.enable(name)

    def disable_tool(self, name: str) -> None:
        self.tools.disable(name)

    async def save_context(self, reason: str | None = None) -> str:
        return await self.tools.execute("save_session_context", {"reason": reason} if reason else {})

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def chat(self, user_message: str) -> str:
        """Run one non-streaming turn and return the final assistant text."""
        self._begin_turn(user_message)
        try:
            final_response = ""
            for iteration in range(1, self.max_iterations + 1):
                self._state = AgentState.AWAITING_MODEL
                response = await self._call_model(self._build_request())
                tool_calls = self._append_assistant(
                    response.message.content, response.message.tool_calls
                )
                final_response = response.message.content
                if not tool_calls:
                    return final_response
                logger.debug("round %d: %d tool call(s)", iteration, len(tool_calls))
                self._state = AgentState.EXECUTING_TOOLS
                for call in tool_calls:
                    result = await self.tools.execute(call.name, call.arguments)
                    self._append_tool_result(call, result)
            logger.warning("tool loop stopped after %d rounds", self.max_iterations)
            return final_response
        finally:
            self._state = AgentState.IDLE

    async def stream_chat(
        self,
        user_message: str,
        on_token: TokenSink,
        callbacks: StreamCallbacks | None = None,
    ) -> str:
        """Run one streaming turn, forwarding every non-empty delta to ``on_token``."""
        callbacks = callbacks or StreamCallbacks()
        self._begin_turn(user_message)
        try:
            final_response = ""
            for iteration in range(1, self.max_iterations + 1):
                self._state = AgentState.AWAITING_MODEL
                parts: list[str] = []
                streamed_calls: list[ChatToolCall] | None = None
                async for chunk in self._stream_model(self._build_request()):
                    if chunk.delta:
                        parts.append(chunk.delta)
                        on_token(chunk.delta)
                    if chunk.tool_calls:
                        streamed_calls = chunk.tool_calls
                full_response = "".join(parts)
                tool_calls = self._append_assistant(full_response, streamed_calls)
                final_response = full_response
                if not tool_calls:
                    return final_response
                logger.debug("round %d: %d tool call(s)", iteration, len(tool_calls))
                self._state = AgentState.EXECUTING_TOOLS
                await self._run_streamed_tools(tool_calls, on_token, callbacks)
            logger.warning("tool loop stopped after %d rounds", self.max_iterations)
            return final_response
        finally:
            self._state = AgentState.IDLE

    async def _run_streamed_tools(
        self,
        tool_calls: list[ChatToolCall],
        on_token: TokenSink,
        callbacks: StreamCallbacks,
    ) -> None:
        bracketed = callbacks.on_tool_start is None or callbacks.on_tool_end is None
        if bracketed:
            on_token("\n")
        for call in tool_calls:
            if callbacks.on_tool_start is not None:
                callbacks.on_tool_start(call.name)
            else:
                on_token(f"[Executing tool: {call.name}]\n")
            result = await self.tools.execute(call.name, call.arguments)
            self._append_tool_result(call, result)
            if callbacks.on_tool_end is not None:
                callbacks.on_tool_end(call.name, result)
            else:
                on_token(f"[Tool result: {_preview(result)}]\n")
        if bracketed:
            on_token("\n")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin_turn(self, user_message: str) -> None:
        if self._state is not AgentState.IDLE:
            raise AgentBusyError("A turn is already in progress")
        logger.info("turn start provider=%s model=%s", self._provider.name, self._model)
        self._transcript.append(ChatMessage(role="user", content=user_message))

    def _build_request(self) -> ChatRequest:
        tools = self.tools.get_enabled_schemas()
        return ChatRequest(
            model=self._model,
            messages=[ChatMessage(role="system", content=self._system_prompt), *self._transcript],
            tools=tools or None,
        )

    def _append_assistant(
        self, content: str, tool_calls: list[ChatToolCall] | None
    ) -> list[ChatToolCall]:
        calls = [c if c.id else c.model_copy(update={"id": new_call_id()}) for c in tool_calls or []]
        self._transcript.append(
            ChatMessage(role="assistant", content=content or "", tool_calls=calls or None)
        )
        return calls

    def _append_tool_result(self, call: ChatToolCall, result: str) -> None:
        self._transcript.append(
            ChatMessage(role="tool", content=result, tool_call_id=call.id, name=call.name)
        )

    def _annotate(self, error: Exception) -> ProviderError:
        name = self._provider.name
        if isinstance(error, ProviderError):
            if error.provider is None:
                error.provider = name
            return error
        return ProviderError(f"Failed to get response from {name}: {error}", error, provider=name)

    async def _call_model(self, request: ChatRequest) -> ChatResponse:
        try:
            return await self._provider.chat(request)
        except Exception as e:
            err = self._annotate(e)
            if err is e:
                raise
            raise err from e

    async def _stream_model(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        try:
            async for chunk in self._provider.stream_chat(request):
                yield chunk
        except Exception as e:
            err = self._annotate(e)
            if err is e:
                raise
            raise err from e
