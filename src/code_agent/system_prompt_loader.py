"""Utilities for building the system prompt from disk: prompt file plus AGENTS.md files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import DEFAULT_SYSTEM_PROMPT, DEFAULT_SYSTEM_PROMPT_PATH

logger = logging.getLogger(__name__)

AGENTS_MD = "AGENTS.md"

_cached_prompt: Optional[str] = None


def _read_file(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""
    except OSError as e:
        logger.warning("could not read %s: %s", path, e)
        return ""
    return text.strip()


def get_default_system_prompt() -> str:
    """Return the default system prompt text, cached after first read.

    Falls back to a generic assistant prompt if the prompt file is missing or unreadable.
    """
    global _cached_prompt
    if _cached_prompt is None:
        _cached_prompt = _read_file(DEFAULT_SYSTEM_PROMPT_PATH) if DEFAULT_SYSTEM_PROMPT_PATH else ""
    return _cached_prompt or DEFAULT_SYSTEM_PROMPT


def discover_agents_md_files(start_dir: str | Path | None = None) -> list[Path]:
    """Find AGENTS.md files from ``start_dir`` up to the filesystem root.

    Returned root-most first, so deeper (more specific) instructions come last.
    """
    current = Path(start_dir or Path.cwd()).resolve()
    found: list[Path] = []
    for directory in (current, *current.parents):
        candidate = directory / AGENTS_MD
        if candidate.is_file():
            found.append(candidate)
    found.reverse()
    return found


def load_agents_md_content(paths: list[Path]) -> str:
    sections = []
    for path in paths:
        content = path.read_text(encoding="utf-8")
        sections.append(f"## Project Instructions (from {path})\n\n{content}")
    return "\n\n".join(sections)


def compose_system_prompt(agents_md_content: str, default_prompt: str) -> str:
    if not agents_md_content:
        return default_prompt
    return f"{agents_md_content}\n\n{default_prompt}"


def build_system_prompt(start_dir: str | Path | None = None, base_prompt: str | None = None) -> str:
    """AGENTS.md instructions (if any) followed by the base or default prompt."""
    agents_md = load_agents_md_content(discover_agents_md_files(start_dir))
    return compose_system_prompt(agents_md, base_prompt or get_default_system_prompt())
