"""Coding agent: tool-calling loop over the llm_bridge providers."""

from .loop import Agent, AgentBusyError, AgentState, StreamCallbacks
from .system_prompt_loader import build_system_prompt, get_default_system_prompt
from .tools import BaseTool, ToolRegistry, create_default_tool_registry, get_default_tools

__all__ = [
    "Agent",
    "AgentBusyError",
    "AgentState",
    "StreamCallbacks",
    "BaseTool",
    "ToolRegistry",
    "create_default_tool_registry",
    "get_default_tools",
    "build_system_prompt",
    "get_default_system_prompt",
]
