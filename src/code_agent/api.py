"""FastAPI router exposing a process-wide coding agent."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from llm_bridge.errors import ProviderError, ProviderRateLimitError
from llm_bridge.models import ChatMessage

from .config import PROVIDERS_CONFIG_PATH, WORKSPACE_DIR
from .loop import Agent, AgentBusyError, AgentState

logger = logging.getLogger(__name__)

router = APIRouter(tags=["agent"])


@lru_cache(maxsize=1)
def get_agent() -> Agent:
    """Build the shared agent from the providers file on first use."""
    return Agent(PROVIDERS_CONFIG_PATH, workspace_dir=WORKSPACE_DIR)


class ChatBody(BaseModel):
    """Request body for POST /chat and /chat/stream."""

    message: str = Field(..., description="User message")


class ChatReply(BaseModel):
    reply: str
    message_count: int = 0


class SystemPromptBody(BaseModel):
    prompt: str = Field(..., min_length=1)


class SwitchProviderBody(BaseModel):
    provider: str = Field(..., description="Provider name from the providers configuration")
    model: str | None = Field(None, description="Model key; the provider default when omitted")


class ProviderInfo(BaseModel):
    provider: str
    model: str


class ToolInfo(BaseModel):
    name: str
    enabled: bool


@contextmanager
def _http_errors() -> Iterator[None]:
    try:
        yield
    except AgentBusyError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ValueError as e:
        # ConfigError and an agent built without a providers configuration
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ProviderRateLimitError as e:
        headers = None
        if e.retry_after_seconds is not None:
            headers = {"Retry-After": str(int(e.retry_after_seconds))}
        raise HTTPException(status_code=429, detail=str(e), headers=headers) from e
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e


@router.post("/chat", response_model=ChatReply)
async def chat(body: ChatBody, agent: Agent = Depends(get_agent)) -> ChatReply:
    """Run one agent turn and return the final assistant text."""
    with _http_errors():
        reply = await agent.chat(body.message)
    return ChatReply(reply=reply, message_count=len(agent.get_context()))


@router.post("/chat/stream")
async def chat_stream(body: ChatBody, agent: Agent = Depends(get_agent)) -> StreamingResponse:
    """Stream the turn as plain text: model tokens plus tool status lines."""
    if agent.state is not AgentState.IDLE:
        raise HTTPException(status_code=409, detail="A turn is already in progress")

    queue: asyncio.Queue[str | None] = asyncio.Queue()

    async def run_turn() -> None:
        try:
            await agent.stream_chat(body.message, queue.put_nowait)
        except (AgentBusyError, ProviderError) as e:
            logger.warning("streamed turn failed: %s", e)
            queue.put_nowait(f"\n[Error: {e}]\n")
        finally:
            queue.put_nowait(None)

    async def body_iter() -> AsyncIterator[str]:
        task = asyncio.create_task(run_turn())
        try:
            while (token := await queue.get()) is not None:
                yield token
        finally:
            await task

    return StreamingResponse(body_iter(), media_type="text/plain; charset=utf-8")


@router.get("/chat/transcript", response_model=list[ChatMessage])
async def get_transcript(agent: Agent = Depends(get_agent)) -> list[ChatMessage]:
    return agent.get_context()


@router.delete("/chat/transcript", status_code=204)
async def clear_transcript(agent: Agent = Depends(get_agent)) -> None:
    agent.clear_context()


@router.put("/chat/system-prompt", status_code=204)
async def set_system_prompt(body: SystemPromptBody, agent: Agent = Depends(get_agent)) -> None:
    agent.set_system_prompt(body.prompt)


@router.get("/chat/provider", response_model=ProviderInfo)
async def get_provider(agent: Agent = Depends(get_agent)) -> ProviderInfo:
    return ProviderInfo(provider=agent.provider.name, model=agent.model)


@router.post("/chat/provider", response_model=ProviderInfo)
async def switch_provider(body: SwitchProviderBody, agent: Agent = Depends(get_agent)) -> ProviderInfo:
    """Switch provider between turns; 409 while a turn is running."""
    with _http_errors():
        agent.switch_provider(body.provider, body.model)
    return ProviderInfo(provider=agent.provider.name, model=agent.model)


@router.get("/tools", response_model=list[ToolInfo])
async def list_tools(agent: Agent = Depends(get_agent)) -> list[ToolInfo]:
    return [ToolInfo(name=n, enabled=agent.is_tool_enabled(n)) for n in agent.get_tool_names()]


def _require_tool(agent: Agent, name: str) -> None:
    if name not in agent.get_tool_names():
        raise HTTPException(status_code=404, detail=f"Tool not found: {name}")


@router.post("/tools/{name}/enable", response_model=ToolInfo)
async def enable_tool(name: str, agent: Agent = Depends(get_agent)) -> ToolInfo:
    _require_tool(agent, name)
    agent.enable_tool(name)
    return ToolInfo(name=name, enabled=True)


@router.post("/tools/{name}/disable", response_model=ToolInfo)
async def disable_tool(name: str, agent: Agent = Depends(get_agent)) -> ToolInfo:
    _require_tool(agent, name)
    agent.disable_tool(name)
    return ToolInfo(name=name, enabled=False)
