from __future__ import annotations

import json

from collections.abc import AsyncIterator
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from core.exceptions import AgentError, RateLimitError
from core.model import MessageDelta, OpenAIChatModel, OpenAIChatModelFactory, to_openai_messages
from models.agent_models import Message, ToolCall, TurnOptions
from models.error_models import ErrorCode
from tools.registry import ToolRegistry


def completion(content: str | None = None, tool_calls: list[SimpleNamespace] | None = None) -> SimpleNamespace:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        model="gpt-test",
        choices=[SimpleNamespace(message=message, finish_reason="stop")],
        usage=None,
    )


def function_call(call_id: str, name: str, arguments: str) -> SimpleNamespace:
    return SimpleNamespace(id=call_id, type="function", function=SimpleNamespace(name=name, arguments=arguments))


def stream_chunk(
    content: str | None = None,
    tool_calls: list[SimpleNamespace] | None = None,
    finish_reason: str | None = None,
) -> SimpleNamespace:
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        model="gpt-test",
        choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)],
        usage=None,
    )


def call_fragment(index: int, call_id: str | None, name: str | None, arguments: str) -> SimpleNamespace:
    return SimpleNamespace(index=index, id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


async def chunk_stream(*chunks: SimpleNamespace) -> AsyncIterator[SimpleNamespace]:
    for chunk in chunks:
        yield chunk


@pytest.fixture
def mock_openai_client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client


class TestToOpenAIMessages:
    def test_roles_and_tool_calls(self) -> None:
        call = ToolCall(id="c1", name="calculator", args={"expression": "1+1"})
        messages = [
            Message.human("add"),
            Message.ai("", tool_calls=[call]),
            Message.tool("c1", "calculator", "Result: 1+1 = 2"),
            Message.ai("2"),
        ]

        converted = to_openai_messages("system", messages)

        assert [m["role"] for m in converted] == ["system", "user", "assistant", "tool", "assistant"]
        assert converted[2]["content"] is None
        assert converted[2]["tool_calls"][0]["function"] == {
            "name": "calculator",
            "arguments": json.dumps({"expression": "1+1"}),
        }
        assert converted[3]["tool_call_id"] == "c1"

    def test_orphan_tool_messages_and_errors_are_dropped(self) -> None:
        messages = [
            Message.human("hi"),
            Message.tool("gone", "calculator", "stale"),
            Message(type="error", content="shown to the user only"),
        ]

        converted = to_openai_messages("system", messages)

        assert [m["role"] for m in converted] == ["system", "user"]

    def test_human_content_blocks_pass_through(self) -> None:
        blocks = [
            {"type": "text", "text": "What is in this picture?"},
            {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
        ]
        messages = [Message(type="human", content=blocks)]

        converted = to_openai_messages("system", messages)

        assert converted[1] == {"role": "user", "content": blocks}


class TestOpenAIChatModel:
    @pytest.mark.asyncio
    async def test_text_completion(self, mock_openai_client: MagicMock) -> None:
        mock_openai_client.chat.completions.create.return_value = completion("hello")
        model = OpenAIChatModel(mock_openai_client, model="gpt-test")

        message = await model.invoke("sys", [Message.human("hi")], [])

        assert message.type == "ai"
        assert message.text == "hello"
        assert message.response_metadata["model"] == "gpt-test"
        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_tool_calls_are_parsed(self, mock_openai_client: MagicMock) -> None:
        mock_openai_client.chat.completions.create.return_value = completion(
            None,
            [
                function_call("c1", "calculator", '{"expression": "2*3"}'),
                function_call("c2", "get_weather", "not json"),
            ],
        )
        tools = [t.build({}) for t in ToolRegistry().all() if t.descriptor.name == "calculator"]
        model = OpenAIChatModel(mock_openai_client, model="gpt-test")

        message = await model.invoke("sys", [Message.human("hi")], tools)

        assert [c.name for c in message.tool_calls] == ["calculator", "get_weather"]
        assert message.tool_calls[0].args == {"expression": "2*3"}
        assert message.tool_calls[1].args == {}
        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["tools"][0]["function"]["name"] == "calculator"

    @pytest.mark.asyncio
    async def test_missing_client(self) -> None:
        model = OpenAIChatModel(None, model="gpt-test")

        with pytest.raises(AgentError) as exc_info:
            await model.invoke("sys", [], [])

        assert exc_info.value.code == ErrorCode.INTERNAL_CONFIGURATION_ERROR

    @pytest.mark.asyncio
    async def test_rate_limit_is_translated(self, mock_openai_client: MagicMock) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        response = httpx.Response(429, headers={"retry-after": "7"}, request=request)
        mock_openai_client.chat.completions.create.side_effect = openai.RateLimitError(
            "slow down", response=response, body=None
        )
        model = OpenAIChatModel(mock_openai_client, model="gpt-test")

        with pytest.raises(RateLimitError) as exc_info:
            await model.invoke("sys", [Message.human("hi")], [])

        assert exc_info.value.retry_after == 7

    @pytest.mark.asyncio
    async def test_api_error_becomes_agent_error(self, mock_openai_client: MagicMock) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_openai_client.chat.completions.create.side_effect = openai.APIConnectionError(request=request)
        model = OpenAIChatModel(mock_openai_client, model="gpt-test", provider="openai")

        with pytest.raises(AgentError) as exc_info:
            await model.invoke("sys", [Message.human("hi")], [])

        assert exc_info.value.provider == "openai"
        assert exc_info.value.code == ErrorCode.AGENT_ERROR


class TestOpenAIChatModelStreaming:
    @pytest.mark.asyncio
    async def test_text_deltas_then_message(self, mock_openai_client: MagicMock) -> None:
        mock_openai_client.chat.completions.create.return_value = chunk_stream(
            stream_chunk("Hel"),
            stream_chunk("lo"),
            stream_chunk(finish_reason="stop"),
        )
        model = OpenAIChatModel(mock_openai_client, model="gpt-test", streaming=True)

        items = [item async for item in model.stream("sys", [Message.human("hi")], [])]

        deltas, message = items[:-1], items[-1]
        assert all(isinstance(d, MessageDelta) for d in deltas)
        assert [d.content for d in deltas] == ["Hel", "lo"]
        assert {d.message_id for d in deltas} == {message.id}
        assert message.text == "Hello"
        assert message.response_metadata["finish_reason"] == "stop"
        assert deltas[0].to_event_data() == {"type": "ai", "id": message.id, "content": "Hel", "chunk": True}
        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_tool_call_fragments_are_assembled(self, mock_openai_client: MagicMock) -> None:
        mock_openai_client.chat.completions.create.return_value = chunk_stream(
            stream_chunk(tool_calls=[call_fragment(0, "c1", "calculator", '{"expre')]),
            stream_chunk(tool_calls=[call_fragment(0, None, None, 'ssion": "2*3"}')]),
            stream_chunk(tool_calls=[call_fragment(1, "c2", "get_weather", "{}")]),
            stream_chunk(finish_reason="tool_calls"),
        )
        model = OpenAIChatModel(mock_openai_client, model="gpt-test", streaming=True)

        items = [item async for item in model.stream("sys", [Message.human("hi")], [])]

        message = items[-1]
        assert message.tool_calls == [
            ToolCall(id="c1", name="calculator", args={"expression": "2*3"}),
            ToolCall(id="c2", name="get_weather", args={}),
        ]
        assert items[0].tool_call_chunks[0]["name"] == "calculator"

    @pytest.mark.asyncio
    async def test_stream_error_is_translated(self, mock_openai_client: MagicMock) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_openai_client.chat.completions.create.side_effect = openai.APIConnectionError(request=request)
        model = OpenAIChatModel(mock_openai_client, model="gpt-test", streaming=True)

        with pytest.raises(AgentError):
            async for _ in model.stream("sys", [Message.human("hi")], []):
                pass


def test_factory_applies_turn_options(mock_openai_client: MagicMock) -> None:
    factory = OpenAIChatModelFactory(mock_openai_client, default_model="gpt-default", temperature=0.2)

    default = factory(TurnOptions())
    custom = factory(TurnOptions(provider="compatible", model="gpt-custom"))

    assert (default.provider, default.model) == ("openai", "gpt-default")
    assert (custom.provider, custom.model) == ("compatible", "gpt-custom")


def test_factory_passes_streaming_flag(mock_openai_client: MagicMock) -> None:
    factory = OpenAIChatModelFactory(mock_openai_client, default_model="gpt-default", streaming=True)

    assert factory(TurnOptions()).streaming is True
