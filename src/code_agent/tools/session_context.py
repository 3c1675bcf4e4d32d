"""Tool that dumps the live session (system prompt + transcript) to a text file."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from llm_bridge.models import ChatMessage

from .base import BaseTool


class ToolContext(Protocol):
    """Live agent state visible to tools. Read at execution time, never cached."""

    @property
    def system_prompt(self) -> str: ...

    @property
    def transcript(self) -> list[ChatMessage]: ...

    @property
    def session_context_path(self) -> Path: ...


def render_session_context(system_prompt: str, messages: list[ChatMessage], reason: str | None = None) -> str:
    lines = [
        "=== Session Context ===",
        f"System Prompt: {system_prompt}",
        f"Saved at: {datetime.now(timezone.utc).isoformat()}",
    ]
    if reason:
        lines.append(f"Reason: {reason}")
    lines.append("")
    if not messages:
        lines.append("No session context.")
    else:
        for i, m in enumerate(messages, start=1):
            lines.append(f"[{i}] {m.role.upper()}:\n{m.content}\n")
    return "\n".join(lines) + "\n"


class SaveSessionContextTool(BaseTool):
    def __init__(self, context: ToolContext) -> None:
        self._context = context

    @property
    def name(self) -> str:
        return "save_session_context"

    @property
    def description(self) -> str:
        return (
            "Saves the current session context to a file. Call this after completing tasks "
            "to persist the session state."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "reason": {
                    "type": "string",
                    "description": "Optional reason for saving the session context",
                },
            },
        }

    async def execute(self, params: dict[str, Any]) -> str:
        reason = params.get("reason")
        text = render_session_context(
            self._context.system_prompt,
            self._context.transcript,
            reason if isinstance(reason, str) else None,
        )
        path = Path(self._context.session_context_path)
        await asyncio.to_thread(path.write_text, text, encoding="utf-8")
        return f"Successfully saved session context to {path}"
