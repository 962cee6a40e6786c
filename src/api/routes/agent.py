"""
Agent endpoints: turn streaming, resume, state, history and message deletion.

``/stream`` and ``/resume`` answer with Server-Sent Events. Input problems
that can be detected up front (no pending interrupt, unrecognized decision,
empty content) are rejected with a regular JSON error before the stream
opens; anything later arrives as an inline ``error`` frame.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated, Any

from fastapi import APIRouter, Body, Path, Query, Request
from fastapi.responses import StreamingResponse

from api.dependencies import AppSettings, Executor, Threads
from api.middleware.request_context import get_request_id, update_request_context
from api.streaming.sse import TurnStream
from core.cancellation import CancellationToken
from core.constants import Settings
from core.exceptions import InterruptNotFoundError
from core.executor import TurnExecutor, TurnInput
from core.interrupts import parse_decision
from core.threads import ThreadLifecycleManager, new_thread_id
from models.agent_models import AgentEvent
from models.api_models import (
    DeleteMessagesRequest,
    DeleteMessagesResponse,
    ResumeRequest,
    StateResponse,
    StreamOptions,
    StreamRequest,
)
from utils.logger import logger

router = APIRouter()

ThreadIdPath = Annotated[
    str,
    Path(..., description="Thread identifier", examples=["thread_3f9a"], min_length=1, max_length=100),
]

_NO_RESUME: Any = object()


async def _open_stream(
    request: Request,
    executor: TurnExecutor,
    threads: ThreadLifecycleManager,
    settings: Settings,
    thread_id: str | None,
    content: str | None,
    options: StreamOptions,
    resume_value: Any = _NO_RESUME,
) -> StreamingResponse:
    thread_id = thread_id or new_thread_id()
    update_request_context(thread_id=thread_id)

    if resume_value is _NO_RESUME and options.allow_tool is not None:
        # Legacy clients answer an interrupt by re-sending the turn with allowTool.
        resume_value = options.allow_tool

    if resume_value is not _NO_RESUME:
        if content and content.strip():
            logger.debug("Ignoring message content sent with a resume value", thread_id=thread_id)
        turn_input = TurnInput.resume(resume_value)
        checkpoint = await executor.get_state(thread_id)
        if checkpoint is None or not checkpoint.is_suspended:
            raise InterruptNotFoundError(thread_id)
        parse_decision(resume_value)
        await threads.touch(thread_id)
        turn_options = None
    else:
        turn_input = TurnInput(user_text=content)
        await threads.ensure_thread(thread_id, title_seed=content)
        await threads.touch(thread_id)
        turn_options = options.to_turn_options()

    def source(token: CancellationToken) -> AsyncIterator[AgentEvent]:
        return executor.run_turn(thread_id, turn_input, turn_options, cancel_token=token)

    stream = TurnStream(
        source,
        thread_id=thread_id,
        request_id=get_request_id(),
        timeout=settings.stream_timeout_seconds,
        grace=settings.stream_cancel_grace_seconds,
        is_disconnected=request.is_disconnected,
        include_debug=settings.include_error_details,
    )
    return stream.response()


@router.get(
    "/stream",
    summary="Stream a turn (query parameters)",
    description="Runs one turn and streams its events as Server-Sent Events.",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
async def stream_get(
    request: Request,
    executor: Executor,
    threads: Threads,
    settings: AppSettings,
    thread_id: Annotated[str | None, Query(alias="threadId", max_length=100)] = None,
    content: Annotated[str | None, Query()] = None,
    provider: Annotated[str | None, Query()] = None,
    model: Annotated[str | None, Query()] = None,
    allow_tool: Annotated[str | None, Query(alias="allowTool", pattern="^(allow|deny)$")] = None,
    mcp_url: Annotated[str | None, Query(alias="mcpUrl")] = None,
    mcp_configs: Annotated[str | None, Query(alias="mcpConfigs", description="JSON array of {url, headers}")] = None,
    auto_tool_call: Annotated[bool, Query(alias="autoToolCall")] = False,
    enabled_tools: Annotated[str | None, Query(alias="enabledTools", description="JSON array or CSV")] = None,
) -> StreamingResponse:
    options = StreamOptions.model_validate(
        {
            "provider": provider,
            "model": model,
            "allowTool": allow_tool,
            "mcpUrl": mcp_url,
            "mcpConfigs": mcp_configs or [],
            "autoToolCall": auto_tool_call,
            "enabledTools": enabled_tools,
        }
    )
    return await _open_stream(request, executor, threads, settings, thread_id, content, options)


@router.post(
    "/stream",
    summary="Stream a turn",
    description="Runs one turn and streams its events. A body carrying `value` resumes a suspended turn.",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
async def stream_post(
    request: Request,
    executor: Executor,
    threads: Threads,
    settings: AppSettings,
    body: StreamRequest,
) -> StreamingResponse:
    resume_value = body.value if body.is_resume else _NO_RESUME
    return await _open_stream(
        request, executor, threads, settings, body.thread_id, body.content, body.options, resume_value
    )


@router.post(
    "/resume",
    summary="Resume a suspended turn",
    description="Answers the first pending interrupt and streams the continuation.",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
async def resume(
    request: Request,
    executor: Executor,
    threads: Threads,
    settings: AppSettings,
    body: ResumeRequest,
) -> StreamingResponse:
    return await _open_stream(
        request, executor, threads, settings, body.thread_id, None, StreamOptions(), body.value
    )


@router.get(
    "/state",
    response_model=StateResponse,
    summary="Thread state",
    description="Messages, scheduled node and first pending interrupt of a thread.",
)
async def get_state(
    executor: Executor,
    thread_id: Annotated[str, Query(alias="threadId", min_length=1, max_length=100)],
) -> StateResponse:
    update_request_context(thread_id=thread_id)
    checkpoint = await executor.get_state(thread_id)
    return StateResponse.from_checkpoint(thread_id, checkpoint)


@router.get(
    "/history/{thread_id}",
    response_model=list[dict[str, Any]],
    summary="Thread history",
    description="Stored messages of a thread in order; empty for an unknown thread.",
)
async def get_history(executor: Executor, thread_id: ThreadIdPath) -> list[dict[str, Any]]:
    checkpoint = await executor.get_state(thread_id)
    if checkpoint is None:
        return []
    return [message.to_event_data() for message in checkpoint.messages]


@router.delete(
    "/messages",
    response_model=DeleteMessagesResponse,
    summary="Delete messages",
    description="Removes messages by id from a thread's history.",
)
async def delete_messages(
    executor: Executor,
    body: Annotated[DeleteMessagesRequest, Body()],
) -> DeleteMessagesResponse:
    update_request_context(thread_id=body.thread_id)
    deleted = await executor.delete_messages(body.thread_id, body.message_ids)
    return DeleteMessagesResponse(thread_id=body.thread_id, deleted_count=deleted)
