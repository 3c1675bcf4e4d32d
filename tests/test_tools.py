"""Unit tests for the built-in tools and the tool registry."""
from __future__ import annotations

import json
import tempfile
import time
import unittest
from pathlib import Path
from typing import Any

from code_agent.tools import (
    DISABLED_BY_DEFAULT,
    BaseTool,
    ListDirTool,
    MkdirTool,
    MoveTool,
    ReadFileTool,
    RemoveTool,
    RunBashTool,
    SaveSessionContextTool,
    SearchFilesTool,
    SearchTextTool,
    ToolError,
    ToolRegistry,
    WriteFileTool,
    create_default_tool_registry,
)
from code_agent.tools.bash import MAX_OUTPUT_SIZE
from code_agent.tools.search import MAX_OUTPUT_LENGTH
from code_agent.tools.session_context import render_session_context
from llm_bridge.models import ChatMessage


class _Context:
    def __init__(self, path: Path) -> None:
        self.system_prompt = "You are a test."
        self.transcript = [
            ChatMessage(role="user", content="hi"),
            ChatMessage(role="assistant", content="hello"),
        ]
        self.session_context_path = path


class _FailingTool(BaseTool):
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always fails"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, params: dict[str, Any]) -> str:
        raise RuntimeError("kaboom")


class TestFilesystemTools(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_write_then_read(self) -> None:
        result = await WriteFileTool(self.base).execute({"file_path": "notes.txt", "content": "hello"})
        self.assertEqual(result, "Successfully wrote to notes.txt")
        self.assertEqual(await ReadFileTool(self.base).execute({"file_path": "notes.txt"}), "hello")

    async def test_read_missing_file(self) -> None:
        with self.assertRaisesRegex(ToolError, "File not found: nope.txt"):
            await ReadFileTool(self.base).execute({"file_path": "nope.txt"})

    async def test_read_requires_path(self) -> None:
        with self.assertRaisesRegex(ToolError, "'file_path' is required"):
            await ReadFileTool(self.base).execute({})

    async def test_paths_outside_base_are_denied(self) -> None:
        with self.assertRaisesRegex(ToolError, "Access denied"):
            await ReadFileTool(self.base).execute({"file_path": "../outside.txt"})
        with self.assertRaisesRegex(ToolError, "Access denied"):
            await WriteFileTool(self.base).execute({"file_path": "/etc/passwd", "content": "x"})

    async def test_list_dir(self) -> None:
        (self.base / "b.txt").write_text("b", encoding="utf-8")
        (self.base / "a_dir").mkdir()
        result = await ListDirTool(self.base).execute({"path": "."})
        self.assertEqual(result, "directory: a_dir\nfile: b.txt")

    async def test_list_empty_and_missing_dir(self) -> None:
        self.assertEqual(await ListDirTool(self.base).execute({"path": "."}), "Directory is empty")
        with self.assertRaisesRegex(ToolError, "Directory not found"):
            await ListDirTool(self.base).execute({"path": "missing"})

    async def test_mkdir_creates_parents(self) -> None:
        result = await MkdirTool(self.base).execute({"path": "a/b/c"})
        self.assertEqual(result, "Successfully created directory: a/b/c")
        self.assertTrue((self.base / "a" / "b" / "c").is_dir())

    async def test_remove_file_and_tree(self) -> None:
        (self.base / "f.txt").write_text("x", encoding="utf-8")
        (self.base / "tree" / "sub").mkdir(parents=True)
        (self.base / "tree" / "sub" / "g.txt").write_text("y", encoding="utf-8")
        tool = RemoveTool(self.base)
        self.assertEqual(await tool.execute({"path": "f.txt"}), "Successfully removed: f.txt")
        self.assertEqual(await tool.execute({"path": "tree"}), "Successfully removed: tree")
        self.assertFalse((self.base / "f.txt").exists())
        self.assertFalse((self.base / "tree").exists())

    async def test_remove_refuses_base_dir(self) -> None:
        with self.assertRaisesRegex(ToolError, "base directory"):
            await RemoveTool(self.base).execute({"path": "."})
        self.assertTrue(self.base.exists())

    async def test_move(self) -> None:
        (self.base / "old.txt").write_text("x", encoding="utf-8")
        result = await MoveTool(self.base).execute({"path": "old.txt", "dest": "new.txt"})
        self.assertEqual(result, "Successfully moved old.txt to new.txt")
        self.assertTrue((self.base / "new.txt").exists())
        with self.assertRaisesRegex(ToolError, "Source path not found"):
            await MoveTool(self.base).execute({"path": "old.txt", "dest": "other.txt"})


class TestSearchTools(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(self._tmp.name).resolve()
        (self.base / "src").mkdir()
        (self.base / "src" / "main.py").write_text("import os\ndef main():\n    return 42\n", encoding="utf-8")
        (self.base / "README.md").write_text("# main project\n", encoding="utf-8")
        (self.base / ".hidden").mkdir()
        (self.base / ".hidden" / "secret.py").write_text("def main(): pass\n", encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_literal_search(self) -> None:
        result = await SearchTextTool(self.base).execute({"query": "def main", "paths": ["."]})
        self.assertEqual(result, f"{self.base / 'src' / 'main.py'}:2: def main():")

    async def test_regex_search_and_string_paths(self) -> None:
        result = await SearchTextTool(self.base).execute({"query": r"return \d+", "paths": "src", "regex": True})
        self.assertIn(":3:     return 42", result)

    async def test_no_matches(self) -> None:
        result = await SearchTextTool(self.base).execute({"query": "zzz", "paths": ["."]})
        self.assertEqual(result, "No matches found for query: zzz")

    async def test_invalid_regex(self) -> None:
        with self.assertRaisesRegex(ToolError, "Invalid regex"):
            await SearchTextTool(self.base).execute({"query": "(", "paths": ["."], "regex": True})

    async def test_output_is_truncated(self) -> None:
        (self.base / "big.txt").write_text(("needle " + "x" * 100 + "\n") * 1000, encoding="utf-8")
        result = await SearchTextTool(self.base).execute({"query": "needle", "paths": ["big.txt"]})
        self.assertTrue(result.endswith("[Output truncated - exceeded size limit]"))
        body = result[: -len("\n\n[Output truncated - exceeded size limit]")]
        self.assertLessEqual(len(body), MAX_OUTPUT_LENGTH)

    async def test_search_files(self) -> None:
        result = await SearchFilesTool(self.base).execute({"pattern": "**/*.py"})
        self.assertEqual(result, str(self.base / "src" / "main.py"))
        self.assertEqual(
            await SearchFilesTool(self.base).execute({"pattern": "*.rs"}),
            "No files found matching pattern: *.rs",
        )

    async def test_search_files_rejects_escaping_patterns(self) -> None:
        with self.assertRaisesRegex(ToolError, "Access denied"):
            await SearchFilesTool(self.base).execute({"pattern": "../*"})


class TestRunBashTool(unittest.IsolatedAsyncioTestCase):
    async def test_captures_stdout_stderr_and_exit_code(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            raw = await RunBashTool(tmp).execute({"command": "echo out; echo err >&2; exit 3"})
        result = json.loads(raw)
        self.assertEqual(result, {"stdout": "out\n", "stderr": "err\n", "exit_code": 3})

    async def test_runs_in_base_dir_with_env(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            raw = await RunBashTool(tmp).execute({"command": 'pwd; echo "$GREETING"', "env": {"GREETING": "hi"}})
            expected_dir = str(Path(tmp).resolve())
        stdout_lines = json.loads(raw)["stdout"].splitlines()
        self.assertEqual(Path(stdout_lines[0]).resolve(), Path(expected_dir))
        self.assertEqual(stdout_lines[1], "hi")

    async def test_timeout_kills_process(self) -> None:
        result = json.loads(await RunBashTool().execute({"command": "sleep 5", "timeout": 100}))
        self.assertEqual(result["exit_code"], -1)
        self.assertEqual(result["stderr"], "Command timed out and was killed")

    async def test_timeout_kills_commands_started_by_the_shell(self) -> None:
        started = time.monotonic()
        result = json.loads(await RunBashTool().execute({"command": "sleep 4; echo done", "timeout": 200}))
        self.assertLess(time.monotonic() - started, 2)
        self.assertEqual(result["exit_code"], -1)
        self.assertNotIn("done", result["stdout"])

    async def test_large_output_is_truncated(self) -> None:
        count = MAX_OUTPUT_SIZE + 10
        result = json.loads(await RunBashTool().execute({"command": f"head -c {count} /dev/zero | tr '\\0' a"}))
        self.assertTrue(result["stdout"].endswith("[stdout truncated]"))
        self.assertEqual(len(result["stdout"]), MAX_OUTPUT_SIZE + len("\n[stdout truncated]"))


class TestSessionContext(unittest.IsolatedAsyncioTestCase):
    def test_render_empty(self) -> None:
        text = render_session_context("prompt", [])
        self.assertTrue(text.startswith("=== Session Context ===\nSystem Prompt: prompt\nSaved at: "))
        self.assertIn("No session context.", text)
        self.assertNotIn("Reason:", text)

    async def test_save_writes_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp, "session.txt")
            tool = SaveSessionContextTool(_Context(path))
            result = await tool.execute({"reason": "done"})
            text = path.read_text(encoding="utf-8")
        self.assertEqual(result, f"Successfully saved session context to {path}")
        self.assertIn("Reason: done", text)
        self.assertIn("[1] USER:\nhi", text)
        self.assertIn("[2] ASSISTANT:\nhello", text)


class TestToolRegistry(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(self._tmp.name)
        self.registry = create_default_tool_registry(_Context(self.base / "ctx.txt"), self.base)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_default_registration_order_and_disabled_set(self) -> None:
        self.assertEqual(
            self.registry.get_tool_names(),
            [
                "read_file",
                "write_file",
                "list_dir",
                "mkdir",
                "remove",
                "move",
                "search_text",
                "search_files",
                "run_bash",
                "save_session_context",
            ],
        )
        for name in self.registry.get_tool_names():
            self.assertEqual(self.registry.is_tool_enabled(name), name not in DISABLED_BY_DEFAULT)
        enabled = [s.name for s in self.registry.get_enabled_schemas()]
        self.assertNotIn("remove", enabled)
        self.assertNotIn("run_bash", enabled)

    def test_schema_names_match_tool_names(self) -> None:
        self.registry.enable("remove")
        self.registry.enable("run_bash")
        self.assertEqual(
            [s.name for s in self.registry.get_enabled_schemas()], self.registry.get_tool_names()
        )

    def test_enable_disable_idempotent_and_unknown_noop(self) -> None:
        self.registry.disable("read_file")
        self.registry.disable("read_file")
        self.assertFalse(self.registry.is_tool_enabled("read_file"))
        self.registry.enable("read_file")
        self.registry.enable("read_file")
        self.assertTrue(self.registry.is_tool_enabled("read_file"))
        self.registry.enable("nope")
        self.registry.disable("nope")
        self.assertFalse(self.registry.has_tool("nope"))
        self.assertFalse(self.registry.is_tool_enabled("nope"))

    def test_unregister(self) -> None:
        self.registry.unregister("move")
        self.registry.unregister("move")
        self.assertNotIn("move", self.registry.get_tool_names())

    async def test_execute_unknown_and_disabled(self) -> None:
        (self.base / "keep.txt").write_text("x", encoding="utf-8")
        self.assertEqual(await self.registry.execute("nope", {}), "Tool not found: nope")
        self.assertEqual(
            await self.registry.execute("remove", {"path": "keep.txt"}), "Tool not available: remove"
        )
        self.assertTrue((self.base / "keep.txt").exists())

    async def test_execute_catches_tool_errors(self) -> None:
        registry = ToolRegistry()
        registry.register(_FailingTool())
        self.assertEqual(await registry.execute("explode", {}), "Error executing explode: kaboom")
        result = await self.registry.execute("read_file", {"file_path": "missing.txt"})
        self.assertEqual(result, "Error executing read_file: File not found: missing.txt")

    async def test_execute_tolerates_missing_args(self) -> None:
        result = await self.registry.execute("list_dir", None)
        self.assertTrue(result.startswith("Error executing list_dir:"))


if __name__ == "__main__":
    unittest.main()
