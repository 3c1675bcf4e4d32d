"""Filesystem tools confined to a base directory."""

from __future__ import annotations

import asyncio
import errno
import shutil
from pathlib import Path
from typing import Any

from .base import BaseTool, ToolError, confine_path, require_str


class _FilesystemTool(BaseTool):
    def __init__(self, base_dir: str | Path | None = None) -> None:
        self._base_dir = base_dir

    def _path(self, raw: str) -> Path:
        return confine_path(raw, self._base_dir)


class ReadFileTool(_FilesystemTool):
    """Returns the text content of a file."""

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Reads the content of a file from the filesystem"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "file_path": {"type": "string", "description": "The path to the file to read"},
            },
            "required": ["file_path"],
        }

    async def execute(self, params: dict[str, Any]) -> str:
        raw = require_str(params, "file_path")
        path = self._path(raw)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError as e:
            raise ToolError(f"File not found: {raw}") from e
        except IsADirectoryError as e:
            raise ToolError(f"Path is a directory, not a file: {raw}") from e
        except PermissionError as e:
            raise ToolError(f"Permission denied: {raw}") from e
        except UnicodeDecodeError as e:
            raise ToolError(f"File is not valid UTF-8 text: {raw}") from e


class WriteFileTool(_FilesystemTool):
    """Writes text content to a file, replacing it."""

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Writes content to a file on the filesystem"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "file_path": {"type": "string", "description": "The path to the file to write"},
                "content": {"type": "string", "description": "The content to write to the file"},
            },
            "required": ["file_path", "content"],
        }

    async def execute(self, params: dict[str, Any]) -> str:
        raw = require_str(params, "file_path")
        content = params.get("content")
        if not isinstance(content, str):
            raise ToolError("'content' is required and must be a string")
        path = self._path(raw)
        try:
            await asyncio.to_thread(path.write_text, content, encoding="utf-8")
        except FileNotFoundError as e:
            raise ToolError(f"Directory not found for file: {raw}") from e
        except IsADirectoryError as e:
            raise ToolError(f"Path is a directory, not a file: {raw}") from e
        except PermissionError as e:
            raise ToolError(f"Permission denied: {raw}") from e
        return f"Successfully wrote to {raw}"


class ListDirTool(_FilesystemTool):
    """Lists directory entries as ``file: name`` / ``directory: name`` lines."""

    @property
    def name(self) -> str:
        return "list_dir"

    @property
    def description(self) -> str:
        return (
            "Lists the contents of a directory at a given path. "
            "Returns entries with type (file or directory) and name."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The directory path to list"},
            },
            "required": ["path"],
        }

    async def execute(self, params: dict[str, Any]) -> str:
        raw = require_str(params, "path")
        path = self._path(raw)

        def _list() -> list[str]:
            return [
                f"{'directory' if entry.is_dir() else 'file'}: {entry.name}"
                for entry in sorted(path.iterdir(), key=lambda p: p.name)
            ]

        try:
            lines = await asyncio.to_thread(_list)
        except FileNotFoundError as e:
            raise ToolError(f"Directory not found: {raw}") from e
        except NotADirectoryError as e:
            raise ToolError(f"Path is not a directory: {raw}") from e
        except PermissionError as e:
            raise ToolError(f"Permission denied: {raw}") from e
        if not lines:
            return "Directory is empty"
        return "\n".join(lines)


class MkdirTool(_FilesystemTool):
    """Creates a directory, including missing parents."""

    @property
    def name(self) -> str:
        return "mkdir"

    @property
    def description(self) -> str:
        return (
            "Creates a directory at the specified path. "
            "Creates intermediate parent directories if they don't exist."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The directory path to create"},
            },
            "required": ["path"],
        }

    async def execute(self, params: dict[str, Any]) -> str:
        raw = require_str(params, "path")
        path = self._path(raw)
        try:
            await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)
        except FileExistsError as e:
            raise ToolError(f"Path already exists as a file: {raw}") from e
        except PermissionError as e:
            raise ToolError(f"Permission denied: {raw}") from e
        return f"Successfully created directory: {raw}"


class RemoveTool(_FilesystemTool):
    """Deletes a file or a directory tree. Registered disabled by default."""

    @property
    def name(self) -> str:
        return "remove"

    @property
    def description(self) -> str:
        return (
            "Deletes a file or directory at the specified path. WARNING: Supports recursive "
            "deletion for non-empty directories. This tool is disabled by default and must "
            "be explicitly enabled."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file or directory path to remove"},
            },
            "required": ["path"],
        }

    async def execute(self, params: dict[str, Any]) -> str:
        raw = require_str(params, "path")
        path = self._path(raw)
        if path == confine_path(".", self._base_dir):
            raise ToolError("Refusing to remove the base directory itself")

        def _remove() -> None:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()

        try:
            await asyncio.to_thread(_remove)
        except FileNotFoundError as e:
            raise ToolError(f"Path not found: {raw}") from e
        except PermissionError as e:
            raise ToolError(f"Permission denied: {raw}") from e
        return f"Successfully removed: {raw}"


class MoveTool(_FilesystemTool):
    """Moves or renames a file or directory."""

    @property
    def name(self) -> str:
        return "move"

    @property
    def description(self) -> str:
        return "Moves or renames a file or directory from a source path to a destination path"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The source file or directory path"},
                "dest": {"type": "string", "description": "The destination file or directory path"},
            },
            "required": ["path", "dest"],
        }

    async def execute(self, params: dict[str, Any]) -> str:
        raw_src = require_str(params, "path")
        raw_dest = require_str(params, "dest")
        src = self._path(raw_src)
        dest = self._path(raw_dest)
        try:
            await asyncio.to_thread(src.rename, dest)
        except FileNotFoundError as e:
            raise ToolError(f"Source path not found: {raw_src}") from e
        except PermissionError as e:
            raise ToolError("Permission denied for move operation") from e
        except FileExistsError as e:
            raise ToolError(f"Destination already exists: {raw_dest}") from e
        except OSError as e:
            if e.errno == errno.EXDEV:
                raise ToolError(f"Cannot move across filesystems: {raw_src} to {raw_dest}") from e
            raise
        return f"Successfully moved {raw_src} to {raw_dest}"
