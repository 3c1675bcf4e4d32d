"""Tool protocol, built-in tools and the tool registry."""

from __future__ import annotations

from pathlib import Path

from .base import BaseTool, ToolError
from .bash import RunBashTool
from .filesystem import ListDirTool, MkdirTool, MoveTool, ReadFileTool, RemoveTool, WriteFileTool
from .registry import ToolEntry, ToolRegistry
from .search import SearchFilesTool, SearchTextTool
from .session_context import SaveSessionContextTool, ToolContext

# Destructive tools start disabled; callers opt in via ToolRegistry.enable().
DISABLED_BY_DEFAULT = frozenset({"run_bash", "remove"})


def get_default_tools(context: ToolContext, base_dir: str | Path | None = None) -> list[BaseTool]:
    """Return the built-in tool list, in registration order."""
    return [
        ReadFileTool(base_dir),
        WriteFileTool(base_dir),
        ListDirTool(base_dir),
        MkdirTool(base_dir),
        RemoveTool(base_dir),
        MoveTool(base_dir),
        SearchTextTool(base_dir),
        SearchFilesTool(base_dir),
        RunBashTool(base_dir),
        SaveSessionContextTool(context),
    ]


def create_default_tool_registry(
    context: ToolContext, base_dir: str | Path | None = None
) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in get_default_tools(context, base_dir):
        registry.register(tool, enabled=tool.name not in DISABLED_BY_DEFAULT)
    return registry


__all__ = [
    "BaseTool",
    "ToolError",
    "ToolContext",
    "ToolEntry",
    "ToolRegistry",
    "ReadFileTool",
    "WriteFileTool",
    "ListDirTool",
    "MkdirTool",
    "RemoveTool",
    "MoveTool",
    "SearchTextTool",
    "SearchFilesTool",
    "RunBashTool",
    "SaveSessionContextTool",
    "DISABLED_BY_DEFAULT",
    "get_default_tools",
    "create_default_tool_registry",
]
