"""Tool protocol shared by all built-in and custom tools."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from llm_bridge.models import ChatTool


class BaseTool(ABC):
    """Base class for agent tools.

    ``execute`` returns the text handed back to the model and raises on
    failure; the registry turns exceptions into error strings.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for parameters."""
        ...

    @abstractmethod
    async def execute(self, params: dict[str, Any]) -> str:
        ...

    def to_schema(self) -> ChatTool:
        return ChatTool(name=self.name, description=self.description, parameters=self.parameters)


class ToolError(Exception):
    """Raised by tools for expected failures (missing file, bad argument, ...)."""


def require_str(params: dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value:
        raise ToolError(f"'{key}' is required and must be a non-empty string")
    return value


def confine_path(path: str, base_dir: str | Path | None = None) -> Path:
    """Resolve ``path`` and reject it if it escapes ``base_dir`` (default: cwd)."""
    base = Path(base_dir or Path.cwd()).resolve()
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = base / candidate
    resolved = candidate.resolve()
    if resolved != base and not resolved.is_relative_to(base):
        raise ToolError(f"Access denied: Path '{path}' is outside the allowed directory")
    return resolved
