"""
Turn executor.

A thread's conversation is an explicit state machine over its Checkpoint:
``next`` names the node to run (``agent`` invokes the model, ``tools``
resolves the tool calls of the last AI message) and ``step`` maps
``(Checkpoint, runtime) -> (Checkpoint, events)``. ``run_turn`` drives the
steps under the thread's lock and persists every step before its events are
yielded, so anything a client has seen is already durable. Streaming models
also emit transient ``ai`` delta events (``chunk: true``) sharing the id of
the message they build; the full ``ai`` event follows once it is stored.

Suspension is whole-turn: auto-approved calls of an AI message run first,
then every gated call gets an interrupt on a single pending task and the
turn stops. The model is invoked again only after all of them are resolved.
"""

from __future__ import annotations

import time

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from core.cancellation import CancellationToken
from core.checkpoint import CheckpointStore
from core.constants import EVENT_AI, EVENT_INTERRUPT, EVENT_TOOL, NODE_AGENT, NODE_TOOLS
from core.exceptions import (
    AgentError,
    InterruptNotFoundError,
    MCPError,
    ThreadNotFoundError,
    ValidationError,
)
from core.interrupts import (
    Decision,
    discard_pending,
    parse_decision,
    rejection_message,
    suspend,
    take_first_interrupt,
)
from core.model import ChatModel, ChatModelFactory, MessageDelta
from core.prompts import SYSTEM_PROMPT, build_system_prompt
from integrations.mcp_tools import MCPToolSource
from models.agent_models import AgentEvent, Checkpoint, Message, ToolCall, TurnOptions
from models.error_models import ErrorCode
from models.tool_models import ToolLoadOptions
from tools.base import Tool
from tools.loader import ToolLoader
from utils.logger import TurnRecord, logger

_UNSET: Any = object()


@dataclass(frozen=True)
class TurnInput:
    """New user text or a resume value, never both."""

    user_text: str | None = None
    resume_value: Any = _UNSET

    def __post_init__(self) -> None:
        if self.user_text is not None and self.is_resume:
            raise ValidationError("Provide either message content or a resume value, not both")
        if self.user_text is None and not self.is_resume:
            raise ValidationError("Either message content or a resume value is required")
        if self.user_text is not None and not self.user_text.strip():
            raise ValidationError("Message content must not be empty")

    @property
    def is_resume(self) -> bool:
        return self.resume_value is not _UNSET

    @classmethod
    def text(cls, user_text: str) -> TurnInput:
        return cls(user_text=user_text)

    @classmethod
    def resume(cls, value: Any) -> TurnInput:
        return cls(resume_value=value)


@dataclass
class TurnRuntime:
    """Per-turn collaborators: the model and the tools exposed to it."""

    model: ChatModel
    tools: dict[str, Tool] = field(default_factory=dict)
    system_prompt: str = SYSTEM_PROMPT

    @property
    def tool_list(self) -> list[Tool]:
        return list(self.tools.values())

    def needs_approval(self, call: ToolCall, options: TurnOptions) -> bool:
        tool = self.tools.get(call.name)
        # Unknown tools never run; they resolve to an error tool message.
        if tool is None or options.auto_tool_call:
            return False
        return tool.requires_approval


def _ai_event(message: Message) -> AgentEvent:
    return AgentEvent(type=EVENT_AI, data=message.to_event_data())


def _delta_event(delta: MessageDelta) -> AgentEvent:
    return AgentEvent(type=EVENT_AI, data=delta.to_event_data())


def _tag_error(error: AgentError, thread_id: str) -> None:
    if error.thread_id is None:
        error.thread_id = thread_id
        error.details = {**(error.details or {}), "thread_id": thread_id}


def _append_ai(checkpoint: Checkpoint, message: Message) -> tuple[Checkpoint, list[AgentEvent]]:
    next_nodes = [NODE_TOOLS] if message.tool_calls else []
    updated = checkpoint.model_copy(update={"messages": [*checkpoint.messages, message], "next": next_nodes})
    return updated, [_ai_event(message)]


def _tool_event(message: Message) -> AgentEvent:
    return AgentEvent(type=EVENT_TOOL, data=message.to_event_data())


class TurnExecutor:
    """Runs turns for threads against a checkpoint store."""

    def __init__(
        self,
        store: CheckpointStore,
        model_factory: ChatModelFactory,
        tool_loader: ToolLoader,
        mcp_source: MCPToolSource | None = None,
        system_prompt: str = SYSTEM_PROMPT,
        max_agent_steps: int = 25,
        lock_timeout: float | None = 10.0,
    ):
        self.store = store
        self.model_factory = model_factory
        self.tool_loader = tool_loader
        self.mcp_source = mcp_source
        self.system_prompt = system_prompt
        self.max_agent_steps = max_agent_steps
        self.lock_timeout = lock_timeout

    # Runtime

    async def build_runtime(self, thread_id: str, options: TurnOptions) -> TurnRuntime:
        """Materialize the model and tools for ``options``."""
        result = self.tool_loader.load(ToolLoadOptions(include_ids=options.enabled_tools))
        tools = result.by_name()

        servers = options.mcp_servers()
        if servers and self.mcp_source is not None:
            try:
                mcp_tools = await self.mcp_source.load_tools(servers)
            except MCPError as e:
                logger.warning(f"MCP tools unavailable, continuing without them: {e.message}", thread_id=thread_id)
            else:
                for tool in mcp_tools:
                    if options.enabled_tools is not None and tool.id not in options.enabled_tools:
                        continue
                    if tool.name in tools:
                        logger.warning(f"MCP tool {tool.name} shadows a built-in tool; keeping built-in")
                        continue
                    tools[tool.name] = tool

        return TurnRuntime(model=self.model_factory(options), tools=tools, system_prompt=self.system_prompt)

    # Steps

    async def step(
        self,
        checkpoint: Checkpoint,
        runtime: TurnRuntime,
        cancel_token: CancellationToken | None = None,
    ) -> tuple[Checkpoint, list[AgentEvent]]:
        """Run the node scheduled in ``checkpoint.next``."""
        if not checkpoint.next:
            return checkpoint, []
        node = checkpoint.next[0]
        if node == NODE_AGENT:
            return await self._agent_step(checkpoint, runtime)
        if node == NODE_TOOLS:
            return await self._tools_step(checkpoint, runtime, cancel_token)
        raise AgentError(f"Unknown node '{node}'", thread_id=checkpoint.thread_id)

    async def _agent_step(self, checkpoint: Checkpoint, runtime: TurnRuntime) -> tuple[Checkpoint, list[AgentEvent]]:
        prompt = build_system_prompt(runtime.system_prompt, list(runtime.tools))
        try:
            message = await runtime.model.invoke(prompt, checkpoint.messages, runtime.tool_list)
        except AgentError as e:
            _tag_error(e, checkpoint.thread_id)
            raise
        return _append_ai(checkpoint, message)

    async def _stream_agent_step(
        self, checkpoint: Checkpoint, runtime: TurnRuntime
    ) -> AsyncIterator[MessageDelta | Message]:
        """Agent step for streaming models: deltas as they arrive, then the message."""
        prompt = build_system_prompt(runtime.system_prompt, list(runtime.tools))
        message = None
        try:
            async for item in runtime.model.stream(prompt, checkpoint.messages, runtime.tool_list):
                if isinstance(item, Message):
                    message = item
                else:
                    yield item
        except AgentError as e:
            _tag_error(e, checkpoint.thread_id)
            raise
        if message is None:
            raise AgentError("Model stream ended without a message", thread_id=checkpoint.thread_id)
        yield message

    async def _tools_step(
        self,
        checkpoint: Checkpoint,
        runtime: TurnRuntime,
        cancel_token: CancellationToken | None,
    ) -> tuple[Checkpoint, list[AgentEvent]]:
        ai_message = checkpoint.last_ai_message()
        calls = checkpoint.unanswered_tool_calls(ai_message) if ai_message is not None else []
        auto = [call for call in calls if not runtime.needs_approval(call, checkpoint.options)]
        gated = [call for call in calls if runtime.needs_approval(call, checkpoint.options)]

        messages = list(checkpoint.messages)
        events: list[AgentEvent] = []
        for call in auto:
            if cancel_token is not None and cancel_token.is_cancelled:
                # Leave the rest unanswered; the next user message supersedes them.
                return checkpoint.model_copy(update={"messages": messages}), events
            result = await self._execute(checkpoint.thread_id, call, runtime)
            messages.append(result)
            events.append(_tool_event(result))

        updated = checkpoint.model_copy(update={"messages": messages})
        if gated and ai_message is not None:
            updated, interrupt = suspend(updated, ai_message, gated)
            events.append(AgentEvent(type=EVENT_INTERRUPT, data=interrupt.to_event_data()))
            logger.info(f"Turn suspended on {len(gated)} gated tool call(s)", thread_id=checkpoint.thread_id)
            return updated, events

        return updated.model_copy(update={"next": [NODE_AGENT]}), events

    async def _resolve_step(
        self,
        checkpoint: Checkpoint,
        decision: Decision,
        runtime: TurnRuntime,
    ) -> tuple[Checkpoint, list[AgentEvent]]:
        updated, _, call = take_first_interrupt(checkpoint)
        if decision.approved:
            result = await self._execute(checkpoint.thread_id, call, runtime)
        else:
            result = rejection_message(call, decision.feedback)
            logger.info(f"Tool call {call.name} rejected", thread_id=checkpoint.thread_id)

        updated = updated.model_copy(update={"messages": [*updated.messages, result]})
        events = [_tool_event(result)]

        pending = updated.first_pending_interrupt()
        if pending is not None:
            events.append(AgentEvent(type=EVENT_INTERRUPT, data=pending[1].to_event_data()))
        return updated, events

    async def _execute(self, thread_id: str, call: ToolCall, runtime: TurnRuntime) -> Message:
        tool = runtime.tools.get(call.name)
        if tool is None:
            logger.warning(f"Model requested unknown tool {call.name}", thread_id=thread_id)
            return Message.tool(call.id, call.name, f'Error: tool "{call.name}" is not available', status="error")

        try:
            output = await tool.execute(call.args)
        except Exception as e:
            logger.warning(f"Tool {call.name} failed: {e}", thread_id=thread_id)
            return Message.tool(call.id, call.name, f"Error: {e}", status="error")

        logger.log_function_call(call.name, call.args, output)
        return Message.tool(call.id, call.name, output)

    # Turns

    def _start(
        self,
        checkpoint: Checkpoint,
        text: str,
        options: TurnOptions | None,
    ) -> tuple[Checkpoint, list[AgentEvent]]:
        events: list[AgentEvent] = []
        last_ai = checkpoint.last_ai_message()
        if checkpoint.pending_tasks or (last_ai is not None and checkpoint.unanswered_tool_calls(last_ai)):
            checkpoint, superseded = discard_pending(checkpoint)
            events.extend(_tool_event(message) for message in superseded)

        update: dict[str, Any] = {
            "messages": [*checkpoint.messages, Message.human(text)],
            "next": [NODE_AGENT],
        }
        if options is not None:
            update["options"] = options
        return checkpoint.model_copy(update=update), events

    async def run_turn(
        self,
        thread_id: str,
        turn_input: TurnInput,
        options: TurnOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Advance ``thread_id`` by one turn, yielding events as steps persist.

        ``options`` applies to new user text; a resume reuses the options the
        suspended turn was started with.

        Raises:
            ThreadBusyError: If another turn holds the thread past the lock timeout.
            InterruptNotFoundError: On resume when nothing is pending.
            ValidationError: On resume with an unrecognized decision.
            AgentError: On model failure or when ``max_agent_steps`` is exceeded.
        """
        started = time.monotonic()
        emitted = 0
        tool_names: list[str] = []

        async with self.store.lock(thread_id, timeout=self.lock_timeout):
            checkpoint = await self.store.get(thread_id) or Checkpoint(thread_id=thread_id)

            if turn_input.is_resume:
                if not checkpoint.is_suspended:
                    raise InterruptNotFoundError(thread_id)
                decision = parse_decision(turn_input.resume_value)
                runtime = await self.build_runtime(thread_id, checkpoint.options)
                checkpoint, events = await self._resolve_step(checkpoint, decision, runtime)
                user_input = f"[resume: {'approve' if decision.approved else 'reject'}]"
            else:
                checkpoint, events = self._start(checkpoint, turn_input.user_text or "", options)
                runtime = await self.build_runtime(thread_id, checkpoint.options)
                user_input = turn_input.user_text or ""

            checkpoint = await self.store.put(thread_id, checkpoint)
            for event in events:
                emitted += 1
                yield event

            agent_steps = 0
            while checkpoint.next and not checkpoint.is_suspended:
                if cancel_token is not None and cancel_token.is_cancelled:
                    logger.info(
                        f"Turn cancelled before {checkpoint.next[0]} step ({cancel_token.cancel_reason})",
                        thread_id=thread_id,
                    )
                    break

                if checkpoint.next[0] == NODE_AGENT:
                    agent_steps += 1
                    if agent_steps > self.max_agent_steps:
                        raise AgentError(
                            f"Turn exceeded {self.max_agent_steps} model invocations",
                            thread_id=thread_id,
                            code=ErrorCode.AGENT_STEP_LIMIT,
                        )

                if checkpoint.next[0] == NODE_AGENT and runtime.model.streaming:
                    message = None
                    async for item in self._stream_agent_step(checkpoint, runtime):
                        if isinstance(item, Message):
                            message = item
                        else:
                            # Deltas are transient; the assembled message is persisted below.
                            yield _delta_event(item)
                    checkpoint, events = _append_ai(checkpoint, message)
                else:
                    checkpoint, events = await self.step(checkpoint, runtime, cancel_token)
                checkpoint = await self.store.put(thread_id, checkpoint)
                for event in events:
                    emitted += 1
                    if event.type == EVENT_TOOL:
                        tool_names.append(str(event.data.get("name")))
                    yield event

        logger.log_turn(
            TurnRecord(
                thread_id=thread_id,
                user_input=user_input,
                tool_names=tool_names,
                events=emitted,
                interrupted=checkpoint.is_suspended,
                duration_ms=(time.monotonic() - started) * 1000,
            )
        )

    def resolve(
        self,
        thread_id: str,
        value: Any,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Resume a suspended thread with a human decision."""
        return self.run_turn(thread_id, TurnInput.resume(value), cancel_token=cancel_token)

    # Queries and edits

    async def get_state(self, thread_id: str) -> Checkpoint | None:
        return await self.store.get(thread_id)

    async def delete_messages(self, thread_id: str, message_ids: list[str]) -> int:
        """Remove messages by id under the thread lock.

        Pending interrupts whose AI message is deleted are dropped with it.

        Returns:
            Number of messages removed

        Raises:
            ThreadNotFoundError: If the thread has no checkpoint.
        """
        async with self.store.lock(thread_id, timeout=self.lock_timeout):
            checkpoint = await self.store.get(thread_id)
            if checkpoint is None:
                raise ThreadNotFoundError(thread_id)

            doomed = set(message_ids)
            kept = [message for message in checkpoint.messages if message.id not in doomed]
            removed = len(checkpoint.messages) - len(kept)
            if removed == 0:
                return 0

            tasks = [task for task in checkpoint.pending_tasks if task.ai_message_id not in doomed]
            update: dict[str, Any] = {"messages": kept, "pending_tasks": tasks}
            if len(tasks) != len(checkpoint.pending_tasks):
                logger.info("Pending interrupts discarded with their AI message", thread_id=thread_id)
                update["next"] = []
            await self.store.put(thread_id, checkpoint.model_copy(update=update))

        logger.info(f"Deleted {removed} message(s)", thread_id=thread_id)
        return removed


__all__ = [
    "TurnExecutor",
    "TurnInput",
    "TurnRuntime",
]
