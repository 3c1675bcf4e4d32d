"""Unit tests for the OpenRouter provider: translation, SSE decoding, error mapping."""
from __future__ import annotations

import json
import unittest
from collections.abc import AsyncIterator
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai

from llm_bridge.errors import (
    ProviderAuthenticationError,
    ProviderError,
    ProviderModelNotFoundError,
    ProviderRateLimitError,
)
from llm_bridge.models import ChatChunk, ChatMessage, ChatRequest, ChatTool, ChatToolCall
from llm_bridge.providers.openrouter import OpenRouterProvider, map_stop_reason


async def _lines(*lines: str) -> AsyncIterator[str]:
    for line in lines:
        yield line


def _data(payload: dict) -> str:
    return "data: " + json.dumps(payload)


def _status_error(cls: type, status: int, headers: dict[str, str] | None = None) -> Exception:
    request = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
    response = httpx.Response(status, headers=headers or {}, request=request)
    return cls("upstream said no", response=response, body=None)


async def _collect(iterator: AsyncIterator[ChatChunk]) -> list[ChatChunk]:
    return [chunk async for chunk in iterator]


class TestOpenRouterTranslation(unittest.TestCase):
    def setUp(self) -> None:
        self.provider = OpenRouterProvider("openai/gpt-4o-mini", api_key="sk-test")

    def test_requires_api_key(self) -> None:
        with patch.dict("os.environ", {"OPENROUTER_API_KEY": ""}):
            with self.assertRaises(ProviderAuthenticationError):
                OpenRouterProvider("m", api_key="  ")

    def test_messages_with_tool_calls_and_results(self) -> None:
        messages = [
            ChatMessage(role="system", content="sys"),
            ChatMessage(role="user", content="hi"),
            ChatMessage(
                role="assistant",
                content="",
                tool_calls=[ChatToolCall(id="c1", name="read_file", arguments={"file_path": "a"})],
            ),
            ChatMessage(role="tool", content="data", tool_call_id="c1", name="read_file"),
        ]
        out = self.provider._to_openai_messages(messages)
        self.assertEqual(out[0], {"role": "system", "content": "sys"})
        self.assertEqual(
            out[2]["tool_calls"],
            [
                {
                    "id": "c1",
                    "type": "function",
                    "function": {"name": "read_file", "arguments": '{"file_path": "a"}'},
                }
            ],
        )
        self.assertEqual(out[3], {"role": "tool", "content": "data", "tool_call_id": "c1"})

    def test_images_become_content_parts(self) -> None:
        out = self.provider._to_openai_messages(
            [ChatMessage(role="user", content="look", images=[b"\x89PNG"])]
        )
        parts = out[0]["content"]
        self.assertEqual(parts[0], {"type": "text", "text": "look"})
        self.assertTrue(parts[1]["image_url"]["url"].startswith("data:image/png;base64,"))

    def test_build_params_includes_tools(self) -> None:
        request = ChatRequest(
            model="",
            messages=[ChatMessage(role="user", content="hi")],
            tools=[ChatTool(name="echo", description="d")],
        )
        params = self.provider._build_params(request, stream=True)
        self.assertEqual(params["model"], "openai/gpt-4o-mini")
        self.assertTrue(params["stream"])
        self.assertEqual(params["tools"][0]["function"]["name"], "echo")

    def test_stop_reason_mapping(self) -> None:
        self.assertEqual(map_stop_reason("stop", False), "end_turn")
        self.assertEqual(map_stop_reason("tool_calls", True), "tool_use")
        self.assertEqual(map_stop_reason("stop", True), "tool_use")
        self.assertEqual(map_stop_reason("length", False), "max_tokens")


class TestOpenRouterStreaming(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.provider = OpenRouterProvider("openai/gpt-4o-mini", api_key="sk-test")

    async def test_text_deltas_and_terminal_chunk(self) -> None:
        chunks = await _collect(
            self.provider.iter_sse_chunks(
                _lines(
                    ": OPENROUTER PROCESSING",
                    "",
                    _data({"choices": [{"delta": {"content": "He"}}]}),
                    _data({"choices": [{"delta": {"content": "llo"}}]}),
                    "data: [DONE]",
                    _data({"choices": [{"delta": {"content": "ignored"}}]}),
                )
            )
        )
        self.assertEqual([c.delta for c in chunks], ["He", "llo", ""])
        self.assertEqual(chunks[-1].tool_calls, [])

    async def test_malformed_lines_are_skipped(self) -> None:
        chunks = await _collect(
            self.provider.iter_sse_chunks(
                _lines(
                    "data: {not json",
                    "event: ping",
                    _data({"choices": []}),
                    _data({"choices": [{"delta": {"content": "ok"}}]}),
                )
            )
        )
        self.assertEqual([c.delta for c in chunks], ["ok", ""])

    async def test_fragmented_tool_calls_are_reassembled(self) -> None:
        chunks = await _collect(
            self.provider.iter_sse_chunks(
                _lines(
                    _data({"choices": [{"delta": {"tool_calls": [
                        {"index": 0, "id": "call_a", "function": {"name": "read_", "arguments": '{"file'}}
                    ]}}]}),
                    _data({"choices": [{"delta": {"tool_calls": [
                        {"index": 1, "id": "call_b", "function": {"name": "list_dir", "arguments": '{"path": "."}'}}
                    ]}}]}),
                    _data({"choices": [{"delta": {"tool_calls": [
                        {"index": 0, "function": {"name": "file", "arguments": '_path": "a.txt"}'}}
                    ]}}]}),
                    "data: [DONE]",
                )
            )
        )
        self.assertEqual(len(chunks), 1)
        terminal = chunks[0]
        self.assertEqual(terminal.delta, "")
        self.assertEqual(
            terminal.tool_calls,
            [
                ChatToolCall(id="call_a", name="read_file", arguments={"file_path": "a.txt"}),
                ChatToolCall(id="call_b", name="list_dir", arguments={"path": "."}),
            ],
        )

    async def test_empty_missing_and_unparseable_arguments(self) -> None:
        chunks = await _collect(
            self.provider.iter_sse_chunks(
                _lines(
                    _data({"choices": [{"delta": {"tool_calls": [
                        {"index": 0, "id": "c0", "function": {"name": "list_dir", "arguments": ""}},
                        {"index": 1, "id": "c1", "function": {"name": "clear"}},
                        {"index": 2, "id": "c2", "function": {"name": "read_file", "arguments": "{\"file"}},
                    ]}}]}),
                    "data:[DONE",
                    _data({"choices": [{"delta": {"content": "after the marker"}}]}),
                )
            )
        )
        self.assertEqual([c.delta for c in chunks], [""])
        self.assertEqual(
            chunks[0].tool_calls,
            [
                ChatToolCall(id="c0", name="list_dir", arguments={}),
                ChatToolCall(id="c1", name="clear", arguments={}),
                ChatToolCall(id="c2", name="read_file", arguments={"raw": "{\"file"}),
            ],
        )

    async def test_in_stream_error_payload_raises(self) -> None:
        with self.assertRaises(ProviderRateLimitError):
            await _collect(
                self.provider.iter_sse_chunks(
                    _lines(_data({"error": {"code": 429, "message": "Rate limit exceeded"}}))
                )
            )

    async def test_stream_chat_uses_raw_streaming_response(self) -> None:
        response = MagicMock()
        response.iter_lines = lambda: _lines(
            _data({"choices": [{"delta": {"content": "Hi"}}]}), "data: [DONE]"
        )
        context = MagicMock()
        context.__aenter__.return_value = response
        context.__aexit__.return_value = False
        client = MagicMock()
        client.chat.completions.with_streaming_response.create.return_value = context
        self.provider._client = client

        request = ChatRequest(model="openai/gpt-4o-mini", messages=[ChatMessage(role="user", content="hi")])
        chunks = await _collect(self.provider.stream_chat(request))
        self.assertEqual([c.delta for c in chunks], ["Hi", ""])
        kwargs = client.chat.completions.with_streaming_response.create.call_args.kwargs
        self.assertTrue(kwargs["stream"])

    async def test_stream_chat_translates_sdk_errors(self) -> None:
        client = MagicMock()
        client.chat.completions.with_streaming_response.create.side_effect = _status_error(
            openai.AuthenticationError, 401
        )
        self.provider._client = client
        request = ChatRequest(model="m", messages=[ChatMessage(role="user", content="hi")])
        with self.assertRaises(ProviderAuthenticationError):
            await _collect(self.provider.stream_chat(request))


class TestOpenRouterChat(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.provider = OpenRouterProvider("openai/gpt-4o-mini", api_key="sk-test")
        self.client = MagicMock()
        self.provider._client = self.client
        self.request = ChatRequest(model="openai/gpt-4o-mini", messages=[ChatMessage(role="user", content="hi")])

    async def test_chat_parses_tool_calls(self) -> None:
        tool_call = SimpleNamespace(
            id="c1", function=SimpleNamespace(name="read_file", arguments='{"file_path": "a"}')
        )
        completion = SimpleNamespace(
            choices=[
                SimpleNamespace(
                    message=SimpleNamespace(content=None, tool_calls=[tool_call]),
                    finish_reason="tool_calls",
                )
            ]
        )
        self.client.chat.completions.create = AsyncMock(return_value=completion)
        response = await self.provider.chat(self.request)
        self.assertEqual(response.stop_reason, "tool_use")
        self.assertEqual(response.message.content, "")
        self.assertEqual(
            response.message.tool_calls,
            [ChatToolCall(id="c1", name="read_file", arguments={"file_path": "a"})],
        )

    async def test_chat_without_choices(self) -> None:
        self.client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        with self.assertRaisesRegex(ProviderError, "no choices"):
            await self.provider.chat(self.request)

    async def test_error_mapping(self) -> None:
        cases = [
            (_status_error(openai.AuthenticationError, 401), ProviderAuthenticationError),
            (_status_error(openai.PermissionDeniedError, 403), ProviderAuthenticationError),
            (_status_error(openai.NotFoundError, 404), ProviderModelNotFoundError),
            (_status_error(openai.InternalServerError, 503), ProviderError),
        ]
        for error, expected in cases:
            with self.subTest(status=error.status_code):
                self.client.chat.completions.create = AsyncMock(side_effect=error)
                with self.assertRaises(expected) as ctx:
                    await self.provider.chat(self.request)
                self.assertIs(ctx.exception.original_error, error)

    async def test_rate_limit_carries_retry_after(self) -> None:
        error = _status_error(openai.RateLimitError, 429, {"retry-after": "12"})
        self.client.chat.completions.create = AsyncMock(side_effect=error)
        with self.assertRaises(ProviderRateLimitError) as ctx:
            await self.provider.chat(self.request)
        self.assertEqual(ctx.exception.retry_after_seconds, 12.0)

    async def test_insufficient_credits(self) -> None:
        error = _status_error(openai.APIStatusError, 402)
        self.client.chat.completions.create = AsyncMock(side_effect=error)
        with self.assertRaisesRegex(ProviderError, "Insufficient OpenRouter credits"):
            await self.provider.chat(self.request)

    async def test_connection_error(self) -> None:
        request = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
        error = openai.APIConnectionError(request=request)
        self.client.chat.completions.create = AsyncMock(side_effect=error)
        with self.assertRaisesRegex(ProviderError, "Failed to connect to OpenRouter"):
            await self.provider.chat(self.request)


if __name__ == "__main__":
    unittest.main()
