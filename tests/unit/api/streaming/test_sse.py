from __future__ import annotations

import asyncio
import json
import time

from collections.abc import AsyncIterator

import pytest

from api.streaming.sse import TurnStream, format_error, format_event
from core.cancellation import CancellationToken
from core.constants import SSE_DONE_FRAME, SSE_KEEPALIVE_FRAME
from core.exceptions import AgentError, InterruptNotFoundError
from models.agent_models import AgentEvent
from models.error_models import ErrorCode

AI_EVENT = AgentEvent(type="ai", data={"type": "ai", "id": "msg_1", "content": "héllo"})
INTERRUPT_EVENT = AgentEvent(type="interrupt", data={"id": "int_c1", "question": "approve?"})


async def drain(stream: TurnStream) -> list[str]:
    return [frame async for frame in stream.frames()]


def parse_data(frame: str) -> dict:
    line = next(line for line in frame.splitlines() if line.startswith("data: "))
    return json.loads(line[len("data: ") :])


def test_format_event_keeps_unicode() -> None:
    frame = format_event(AI_EVENT)

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert "héllo" in frame
    assert parse_data(frame) == {"type": "ai", "data": AI_EVENT.data}


def test_format_error_for_app_exception() -> None:
    frame = format_error(InterruptNotFoundError("t1"), thread_id="t1", request_id="req_1")

    assert frame.startswith("event: error\n")
    payload = parse_data(frame)
    assert payload["code"] == ErrorCode.INTERRUPT_NOT_FOUND.value
    assert payload["threadId"] == "t1"
    assert payload["requestId"] == "req_1"
    assert payload["errorId"].startswith("err_")
    assert "debug" not in payload


def test_format_error_sanitizes_unexpected_errors() -> None:
    payload = parse_data(format_error(RuntimeError("password=hunter2"), thread_id="t1", request_id=None))

    assert payload["message"] == "Stream processing failed"
    assert payload["code"] == ErrorCode.STREAM_ERROR.value
    assert "hunter2" not in json.dumps(payload)


def test_format_error_debug_details() -> None:
    payload = parse_data(format_error(RuntimeError("boom"), thread_id="t1", request_id=None, include_debug=True))

    assert payload["message"] == "boom"
    assert payload["debug"]["exception_type"] == "RuntimeError"


@pytest.mark.asyncio
async def test_completed_turn_ends_with_done() -> None:
    async def source(token: CancellationToken) -> AsyncIterator[AgentEvent]:
        yield AI_EVENT

    frames = await drain(TurnStream(source, thread_id="t1"))

    assert frames[0] == SSE_KEEPALIVE_FRAME
    assert parse_data(frames[1])["type"] == "ai"
    assert frames[2] == SSE_DONE_FRAME
    assert len(frames) == 3


@pytest.mark.asyncio
async def test_interrupt_ends_stream_without_done() -> None:
    async def source(token: CancellationToken) -> AsyncIterator[AgentEvent]:
        yield AI_EVENT
        yield INTERRUPT_EVENT

    frames = await drain(TurnStream(source, thread_id="t1"))

    assert [parse_data(f)["type"] for f in frames[1:]] == ["ai", "interrupt"]
    assert SSE_DONE_FRAME not in frames


@pytest.mark.asyncio
async def test_failure_ends_with_error_frame() -> None:
    async def source(token: CancellationToken) -> AsyncIterator[AgentEvent]:
        yield AI_EVENT
        raise AgentError("model exploded", thread_id="t1")

    frames = await drain(TurnStream(source, thread_id="t1", request_id="req_9"))

    assert frames[-1].startswith("event: error\n")
    payload = parse_data(frames[-1])
    assert payload["message"] == "model exploded"
    assert payload["code"] == ErrorCode.AGENT_ERROR.value
    assert SSE_DONE_FRAME not in frames


@pytest.mark.asyncio
async def test_timeout_stops_writing_and_lets_step_finish() -> None:
    finished = asyncio.Event()

    async def source(token: CancellationToken) -> AsyncIterator[AgentEvent]:
        await asyncio.sleep(0.2)
        finished.set()
        yield AI_EVENT

    stream = TurnStream(source, thread_id="t1", timeout=0.05, grace=2.0, poll_interval=0.01)
    frames = await drain(stream)

    assert frames == [SSE_KEEPALIVE_FRAME]
    assert stream.token.is_cancelled
    assert stream.token.cancel_reason == "timeout"

    await stream.wait_closed()
    assert finished.is_set()
    assert not stream._producer.cancelled()


@pytest.mark.asyncio
async def test_timeout_closes_without_waiting_for_in_flight_step() -> None:
    async def source(token: CancellationToken) -> AsyncIterator[AgentEvent]:
        yield AI_EVENT
        await asyncio.sleep(1.0)
        yield AI_EVENT

    stream = TurnStream(source, thread_id="t1", timeout=0.1, grace=5.0, poll_interval=0.01)
    started = time.monotonic()
    frames = await drain(stream)
    elapsed = time.monotonic() - started

    assert elapsed < 0.6
    assert len(frames) == 2
    assert parse_data(frames[1])["type"] == "ai"
    assert not stream._producer.done()

    await stream.wait_closed()
    assert stream._producer.done()
    assert not stream._producer.cancelled()


@pytest.mark.asyncio
async def test_producer_is_hard_cancelled_after_grace() -> None:
    async def source(token: CancellationToken) -> AsyncIterator[AgentEvent]:
        await asyncio.sleep(10)
        yield AI_EVENT

    stream = TurnStream(source, thread_id="t1", timeout=0.05, grace=0.05, poll_interval=0.01)
    frames = await drain(stream)
    await stream.wait_closed()

    assert frames == [SSE_KEEPALIVE_FRAME]
    assert stream._producer.cancelled()


@pytest.mark.asyncio
async def test_client_disconnect_cancels_turn() -> None:
    async def source(token: CancellationToken) -> AsyncIterator[AgentEvent]:
        while not token.is_cancelled:
            await asyncio.sleep(0.01)
        return
        yield  # pragma: no cover

    async def is_disconnected() -> bool:
        return True

    stream = TurnStream(source, thread_id="t1", timeout=5.0, is_disconnected=is_disconnected, poll_interval=0.01)
    frames = await drain(stream)
    await stream.wait_closed()

    assert frames == [SSE_KEEPALIVE_FRAME]
    assert stream.token.cancel_reason == "client disconnected"
    assert stream._producer.done()


def test_response_headers() -> None:
    async def source(token: CancellationToken) -> AsyncIterator[AgentEvent]:
        yield AI_EVENT

    response = TurnStream(source).response()

    assert response.media_type.startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache, no-transform"
    assert response.headers["x-accel-buffering"] == "no"
