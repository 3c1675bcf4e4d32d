"""Tool registry: registration order, enable/disable side-table, safe execution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from llm_bridge.models import ChatTool

from .base import BaseTool

logger = logging.getLogger(__name__)


@dataclass
class ToolEntry:
    """A registered tool plus its enabled flag. The tool itself never sees the flag."""

    tool: BaseTool
    schema: ChatTool
    enabled: bool = True

    @property
    def name(self) -> str:
        return self.tool.name


class ToolRegistry:
    """Holds tools keyed by name in registration order."""

    def __init__(self) -> None:
        self._entries: dict[str, ToolEntry] = {}

    def register(self, tool: BaseTool, *, enabled: bool = True) -> None:
        """Add (or replace) a tool. Tools are enabled unless ``enabled=False``."""
        schema = tool.to_schema()
        if schema.name != tool.name:
            raise ValueError(f"Schema name {schema.name!r} does not match tool name {tool.name!r}")
        self._entries[tool.name] = ToolEntry(tool=tool, schema=schema, enabled=enabled)

    def unregister(self, name: str) -> None:
        self._entries.pop(name, None)

    def enable(self, name: str) -> None:
        entry = self._entries.get(name)
        if entry is not None:
            entry.enabled = True

    def disable(self, name: str) -> None:
        entry = self._entries.get(name)
        if entry is not None:
            entry.enabled = False

    def get_enabled_schemas(self) -> list[ChatTool]:
        return [e.schema for e in self._entries.values() if e.enabled]

    def get_tool_names(self) -> list[str]:
        return list(self._entries)

    def has_tool(self, name: str) -> bool:
        return name in self._entries

    def is_tool_enabled(self, name: str) -> bool:
        entry = self._entries.get(name)
        return entry is not None and entry.enabled

    async def execute(self, name: str, args: dict[str, Any] | None) -> str:
        """Run a tool and always return text; failures become error strings."""
        entry = self._entries.get(name)
        if entry is None:
            logger.warning("model requested unknown tool %r", name)
            return f"Tool not found: {name}"
        if not entry.enabled:
            logger.warning("model requested disabled tool %r", name)
            return f"Tool not available: {name}"
        try:
            result = await entry.tool.execute(dict(args) if isinstance(args, dict) else {})
        except Exception as e:
            logger.info("tool %s failed: %s", name, e)
            return f"Error executing {name}: {e}"
        return result if isinstance(result, str) else str(result)
