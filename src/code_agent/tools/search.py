"""Text and filename search tools."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from .base import BaseTool, ToolError, confine_path, require_str

MAX_OUTPUT_LENGTH = 50_000


def _is_hidden(path: Path, root: Path) -> bool:
    return any(part.startswith(".") for part in path.relative_to(root).parts)


def _iter_files(root: Path) -> Iterator[Path]:
    for p in sorted(root.rglob("*")):
        if p.is_file() and not _is_hidden(p, root):
            yield p


class SearchTextTool(BaseTool):
    """Greps file contents for a literal string or a regular expression."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self._base_dir = base_dir

    @property
    def name(self) -> str:
        return "search_text"

    @property
    def description(self) -> str:
        return (
            "Searches for a text query within file contents. Supports literal and regex search "
            "modes. Returns matching lines with file path and line number."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The text or regex pattern to search for"},
                "paths": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of file or directory paths to search in",
                },
                "regex": {
                    "type": "boolean",
                    "description": "If true, treat query as a regular expression. Default: false",
                    "default": False,
                },
            },
            "required": ["query", "paths"],
        }

    async def execute(self, params: dict[str, Any]) -> str:
        query = require_str(params, "query")
        paths = params.get("paths")
        if isinstance(paths, str):
            paths = [paths]
        if not isinstance(paths, list) or not paths:
            raise ToolError("'paths' is required and must be a non-empty array of strings")
        pattern: re.Pattern[str] | None = None
        if params.get("regex") is True:
            try:
                pattern = re.compile(query)
            except re.error as e:
                raise ToolError(f"Invalid regex pattern: {e}") from e
        targets = [confine_path(str(p), self._base_dir) for p in paths]
        return await asyncio.to_thread(self._search, query, pattern, targets)

    @staticmethod
    def _search(query: str, pattern: re.Pattern[str] | None, targets: list[Path]) -> str:
        files: list[Path] = []
        for target in targets:
            if target.is_dir():
                files.extend(_iter_files(target))
            elif target.exists():
                files.append(target)
            else:
                raise ToolError(f"Path not found: {target}")

        matches: list[str] = []
        output_length = 0
        truncated = False
        for file_path in files:
            try:
                lines = file_path.read_text(encoding="utf-8").split("\n")
            except (UnicodeDecodeError, OSError):
                continue  # binary or unreadable
            for lineno, line in enumerate(lines, start=1):
                hit = pattern.search(line) if pattern else query in line
                if not hit:
                    continue
                entry = f"{file_path}:{lineno}: {line}"
                if output_length + len(entry) + 1 > MAX_OUTPUT_LENGTH:
                    truncated = True
                    break
                matches.append(entry)
                output_length += len(entry) + 1
            if truncated:
                break

        if not matches and not truncated:
            return f"No matches found for query: {query}"
        result = "\n".join(matches)
        if truncated:
            result += "\n\n[Output truncated - exceeded size limit]"
        return result


class SearchFilesTool(BaseTool):
    """Finds files by glob pattern relative to the base directory."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self._base_dir = base_dir

    @property
    def name(self) -> str:
        return "search_files"

    @property
    def description(self) -> str:
        return "Finds files matching a glob pattern. Returns a list of matching file paths."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "pattern": {
                    "type": "string",
                    "description": "Glob pattern to match files (e.g., 'src/**/*.py', '**/*.md')",
                },
            },
            "required": ["pattern"],
        }

    async def execute(self, params: dict[str, Any]) -> str:
        pattern = require_str(params, "pattern")
        if Path(pattern).is_absolute() or ".." in Path(pattern).parts:
            raise ToolError(f"Access denied: pattern '{pattern}' must stay inside the allowed directory")
        root = confine_path(".", self._base_dir)

        def _glob() -> list[str]:
            return [
                str(p)
                for p in sorted(root.glob(pattern))
                if p.is_file() and not _is_hidden(p, root)
            ]

        files = await asyncio.to_thread(_glob)
        if not files:
            return f"No files found matching pattern: {pattern}"
        return "\n".join(files)
