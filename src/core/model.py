"""
Chat model contract and the OpenAI Chat Completions adapter.

The executor needs ``invoke(system_prompt, messages, tools) -> Message`` and,
for models with ``streaming`` set, ``stream(...)`` which yields MessageDelta
pieces as they arrive followed by the assembled Message (same id). Provider
errors are translated here into the application taxonomy.
"""

from __future__ import annotations

import json

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol

import openai

from openai import AsyncOpenAI

from core.exceptions import AgentError, AppException, RateLimitError
from models.agent_models import Message, ToolCall, TurnOptions, new_message_id
from models.error_models import ErrorCode
from tools.base import Tool
from utils.logger import logger


@dataclass
class MessageDelta:
    """Incremental piece of an AI message that is still being generated."""

    message_id: str
    content: str = ""
    tool_call_chunks: list[dict[str, Any]] = field(default_factory=list)

    def to_event_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "ai", "id": self.message_id, "content": self.content, "chunk": True}
        if self.tool_call_chunks:
            data["tool_call_chunks"] = self.tool_call_chunks
        return data


class ChatModel(Protocol):
    provider: str
    model: str
    streaming: bool

    async def invoke(self, system_prompt: str, messages: list[Message], tools: list[Tool]) -> Message:
        """Return the next AI message for ``messages``."""
        ...

    def stream(
        self, system_prompt: str, messages: list[Message], tools: list[Tool]
    ) -> AsyncIterator[MessageDelta | Message]:
        """Yield deltas of the next AI message, then the message itself."""
        ...


class ChatModelFactory(Protocol):
    def __call__(self, options: TurnOptions) -> ChatModel: ...


def _human_content(message: Message) -> str | list[dict[str, Any]]:
    # Content blocks (text, image_url, ...) share the Chat Completions part format.
    if isinstance(message.content, str):
        return message.content
    return [dict(block) for block in message.content]


def to_openai_messages(system_prompt: str, messages: list[Message]) -> list[dict[str, Any]]:
    """Convert checkpoint history into Chat Completions messages.

    ``error`` messages are UI-only and never sent to the model. Tool messages
    whose requesting AI message was deleted are dropped as well, since the
    API rejects a tool result without a matching call.
    """
    converted: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    requested: set[str] = set()
    for message in messages:
        if message.type == "human":
            converted.append({"role": "user", "content": _human_content(message)})
        elif message.type == "ai":
            entry: dict[str, Any] = {"role": "assistant", "content": message.text or None}
            if message.tool_calls:
                requested.update(call.id for call in message.tool_calls)
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.args, ensure_ascii=False)},
                    }
                    for call in message.tool_calls
                ]
            converted.append(entry)
        elif message.type == "tool" and message.tool_call_id in requested:
            converted.append({"role": "tool", "tool_call_id": message.tool_call_id, "content": message.text})
    return converted


def _parse_arguments(raw: str | None, tool_name: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Model sent invalid JSON arguments for {tool_name}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAIChatModel:
    """ChatModel over ``AsyncOpenAI.chat.completions`` with function calling."""

    def __init__(
        self,
        client: AsyncOpenAI | None,
        model: str,
        temperature: float = 0.7,
        provider: str = "openai",
        streaming: bool = False,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.provider = provider
        self.streaming = streaming

    def _request(self, system_prompt: str, messages: list[Message], tools: list[Tool]) -> dict[str, Any]:
        if self.client is None:
            raise AgentError(
                "Model provider is not configured (set OPENAI_API_KEY)",
                provider=self.provider,
                model=self.model,
                code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            )
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": to_openai_messages(system_prompt, messages),
            "temperature": self.temperature,
        }
        if tools:
            kwargs["tools"] = [tool.to_openai_schema() for tool in tools]
        return kwargs

    def _translate(self, e: openai.APIError) -> AppException:
        if isinstance(e, openai.RateLimitError):
            retry_after = e.response.headers.get("retry-after") if e.response is not None else None
            return RateLimitError(
                "Model provider rate limit exceeded",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        return AgentError(
            f"Model invocation failed: {type(e).__name__}",
            provider=self.provider,
            model=self.model,
            cause=e,
        )

    async def invoke(self, system_prompt: str, messages: list[Message], tools: list[Tool]) -> Message:
        kwargs = self._request(system_prompt, messages, tools)
        try:
            completion = await self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise self._translate(e) from e

        if not completion.choices:
            raise AgentError("Model returned no choices", provider=self.provider, model=self.model)

        choice = completion.choices[0]
        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                args=_parse_arguments(call.function.arguments, call.function.name),
            )
            for call in (choice.message.tool_calls or [])
            if call.type == "function"
        ]
        metadata: dict[str, Any] = {
            "provider": self.provider,
            "model": completion.model,
            "finish_reason": choice.finish_reason,
        }
        if completion.usage is not None:
            metadata["usage"] = completion.usage.model_dump()

        return Message.ai(choice.message.content or "", tool_calls=tool_calls, response_metadata=metadata)

    async def stream(
        self, system_prompt: str, messages: list[Message], tools: list[Tool]
    ) -> AsyncIterator[MessageDelta | Message]:
        """Stream the completion, yielding deltas and then the assembled message.

        Tool call fragments are keyed by their ``index`` and concatenated; the
        final message carries the parsed calls like ``invoke`` does.
        """
        kwargs = self._request(system_prompt, messages, tools)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}

        message_id = new_message_id()
        parts: list[str] = []
        calls: dict[int, dict[str, str]] = {}
        metadata: dict[str, Any] = {"provider": self.provider, "model": self.model, "finish_reason": None}

        try:
            chunks = await self.client.chat.completions.create(**kwargs)
            async for chunk in chunks:
                if chunk.model:
                    metadata["model"] = chunk.model
                if getattr(chunk, "usage", None) is not None:
                    metadata["usage"] = chunk.usage.model_dump()
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.finish_reason:
                    metadata["finish_reason"] = choice.finish_reason

                call_chunks = []
                for fragment in choice.delta.tool_calls or []:
                    name = fragment.function.name if fragment.function else None
                    arguments = fragment.function.arguments if fragment.function else None
                    entry = calls.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
                    entry["id"] = fragment.id or entry["id"]
                    entry["name"] += name or ""
                    entry["arguments"] += arguments or ""
                    call_chunks.append(
                        {"index": fragment.index, "id": fragment.id, "name": name, "args": arguments}
                    )

                text = choice.delta.content or ""
                if text or call_chunks:
                    parts.append(text)
                    yield MessageDelta(message_id, text, call_chunks)
        except openai.APIError as e:
            raise self._translate(e) from e

        if metadata["finish_reason"] is None and not parts:
            raise AgentError("Model stream ended without a response", provider=self.provider, model=self.model)

        tool_calls = []
        for index in sorted(calls):
            entry = calls[index]
            if not entry["id"] or not entry["name"]:
                logger.warning(f"Dropping incomplete streamed tool call at index {index}")
                continue
            tool_calls.append(
                ToolCall(id=entry["id"], name=entry["name"], args=_parse_arguments(entry["arguments"], entry["name"]))
            )

        yield Message(
            type="ai",
            id=message_id,
            content="".join(parts),
            tool_calls=tool_calls,
            response_metadata=metadata,
        )


class OpenAIChatModelFactory:
    """Builds a ChatModel per turn from the turn's provider/model options."""

    def __init__(
        self,
        client: AsyncOpenAI | None,
        default_model: str,
        temperature: float = 0.7,
        default_provider: str = "openai",
        streaming: bool = False,
    ):
        self.client = client
        self.default_model = default_model
        self.temperature = temperature
        self.default_provider = default_provider
        self.streaming = streaming

    def __call__(self, options: TurnOptions) -> ChatModel:
        return OpenAIChatModel(
            self.client,
            model=options.model or self.default_model,
            temperature=self.temperature,
            provider=options.provider or self.default_provider,
            streaming=self.streaming,
        )


__all__ = [
    "ChatModel",
    "ChatModelFactory",
    "MessageDelta",
    "OpenAIChatModel",
    "OpenAIChatModelFactory",
    "to_openai_messages",
]
