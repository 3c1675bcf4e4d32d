"""Shell command tool. Registered disabled by default."""

from __future__ import annotations

import asyncio
import json
import os
import signal
from pathlib import Path
from typing import Any

from .base import BaseTool, ToolError, require_str

DEFAULT_TIMEOUT_MS = 30_000
MAX_OUTPUT_SIZE = 50 * 1024
KILL_DRAIN_SECONDS = 1.0


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    """Kill the shell and everything it started; the shell leads its own session."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _truncate(output: str, label: str) -> str:
    if len(output) <= MAX_OUTPUT_SIZE:
        return output
    return output[:MAX_OUTPUT_SIZE] + f"\n[{label} truncated]"


class RunBashTool(BaseTool):
    """Runs ``/bin/sh -c <command>`` and reports stdout, stderr and exit code as JSON."""

    def __init__(self, base_dir: str | Path | None = None, shell: str = "/bin/sh") -> None:
        self._base_dir = base_dir
        self._shell = shell

    @property
    def name(self) -> str:
        return "run_bash"

    @property
    def description(self) -> str:
        return (
            "Executes a shell command and returns its output. WARNING: This tool can execute "
            "arbitrary commands. Disabled by default and must be explicitly enabled."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The shell command to execute"},
                "cwd": {
                    "type": "string",
                    "description": "Working directory for command execution. Defaults to the workspace directory",
                },
                "env": {
                    "type": "object",
                    "description": "Additional environment variables (merged with the process environment)",
                    "additionalProperties": {"type": "string"},
                },
                "timeout": {
                    "type": "number",
                    "description": "Timeout in milliseconds. Default: 30000",
                    "default": DEFAULT_TIMEOUT_MS,
                },
            },
            "required": ["command"],
        }

    async def execute(self, params: dict[str, Any]) -> str:
        command = require_str(params, "command")
        cwd = params.get("cwd") or self._base_dir
        env_overrides = params.get("env") or {}
        if not isinstance(env_overrides, dict):
            raise ToolError("'env' must be an object of string values")
        timeout_ms = params.get("timeout", DEFAULT_TIMEOUT_MS)
        if not isinstance(timeout_ms, (int, float)) or timeout_ms <= 0:
            timeout_ms = DEFAULT_TIMEOUT_MS
        env = {**os.environ, **{str(k): str(v) for k, v in env_overrides.items()}}

        try:
            proc = await asyncio.create_subprocess_exec(
                self._shell,
                "-c",
                command,
                cwd=cwd,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise ToolError(f"Working directory or shell not found: {e}") from e

        try:
            stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout_ms / 1000)
        except asyncio.TimeoutError:
            _kill_group(proc)
            try:
                stdout_b, _ = await asyncio.wait_for(proc.communicate(), KILL_DRAIN_SECONDS)
            except asyncio.TimeoutError:
                # A grandchild outside the group still holds the pipe.
                stdout_b = b""
            return json.dumps(
                {
                    "stdout": _truncate(stdout_b.decode(errors="replace"), "stdout"),
                    "stderr": "Command timed out and was killed",
                    "exit_code": -1,
                },
                indent=2,
            )

        return json.dumps(
            {
                "stdout": _truncate(stdout_b.decode(errors="replace"), "stdout"),
                "stderr": _truncate(stderr_b.decode(errors="replace"), "stderr"),
                "exit_code": proc.returncode,
            },
            indent=2,
        )
