"""Agent configuration: paths and defaults."""

from __future__ import annotations

import os
from pathlib import Path

# Align with main_config when running from the repository root.
try:
    from main_config import (
        DEFAULT_SYSTEM_PROMPT_PATH as _DEFAULT_SYSTEM_PROMPT_PATH,
        PROVIDERS_CONFIG_PATH as _PROVIDERS_CONFIG_PATH,
        SESSION_CONTEXT_PATH as _SESSION_CONTEXT_PATH,
        WORKSPACE_DIR as _WORKSPACE_DIR,
    )
except ImportError:
    # Installed without the repository root on sys.path: env vars and cwd only.
    _DEFAULT_SYSTEM_PROMPT_PATH = os.getenv("SYSTEM_PROMPT_PATH", "")
    _PROVIDERS_CONFIG_PATH = os.getenv("PROVIDERS_CONFIG", "providers.json")
    _SESSION_CONTEXT_PATH = os.getenv("SESSION_CONTEXT_PATH", "session_context.txt")
    _WORKSPACE_DIR = os.getenv("AGENT_WORKSPACE", os.getcwd())

DEFAULT_SYSTEM_PROMPT_PATH = Path(_DEFAULT_SYSTEM_PROMPT_PATH) if _DEFAULT_SYSTEM_PROMPT_PATH else None
PROVIDERS_CONFIG_PATH = Path(_PROVIDERS_CONFIG_PATH)
SESSION_CONTEXT_PATH = Path(_SESSION_CONTEXT_PATH)
WORKSPACE_DIR = Path(_WORKSPACE_DIR)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."
DEFAULT_MAX_TOOL_ITERATIONS = 10
TOOL_RESULT_PREVIEW_CHARS = 100
