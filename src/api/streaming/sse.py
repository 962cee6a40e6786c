"""
Server-Sent Events adapter for turn execution.

The turn runs in its own producer task and feeds an asyncio.Queue; the
response generator drains the queue and frames each event. Decoupling the
two lets the adapter close the response at once on timeout or disconnect
while a background reaper lets the producer finish its in-flight step (so
the checkpoint only ever holds whole steps), bounded by a grace period
after which it is hard-cancelled.

Frames:
    : connected                          on open
    data: {"type": ..., "data": {...}}   per event; an interrupt ends the stream
    event: done / data: {}               natural completion
    event: error / data: {...}           failure
"""

from __future__ import annotations

import asyncio
import contextlib
import json

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from fastapi.responses import StreamingResponse

from core.cancellation import CancellationToken
from core.constants import EVENT_INTERRUPT, SSE_DONE_FRAME, SSE_HEADERS, SSE_KEEPALIVE_FRAME, SSE_MEDIA_TYPE
from core.exceptions import AppException, generate_error_id
from models.agent_models import AgentEvent
from models.error_models import ErrorCode, StreamError
from utils.logger import logger

#: Factory for the turn's event iterator, given the stream's cancellation token.
EventSource = Callable[[CancellationToken], AsyncIterator[AgentEvent]]

DISCONNECT_POLL_INTERVAL = 1.0
GENERIC_STREAM_ERROR = "Stream processing failed"

# Reaper tasks of abandoned streams; held so they are not GC'd mid-run.
_background_tasks: set[asyncio.Task[None]] = set()


def format_event(event: AgentEvent) -> str:
    return f"data: {json.dumps(event.to_payload(), ensure_ascii=False, default=str)}\n\n"


def format_error(
    exc: BaseException,
    thread_id: str | None,
    request_id: str | None,
    include_debug: bool = False,
) -> str:
    """Inline error frame. Unexpected errors are sanitized outside development."""
    if isinstance(exc, AppException):
        payload = StreamError(
            message=exc.message,
            code=exc.code.value,
            error_id=exc.error_id,
            thread_id=thread_id,
            request_id=request_id,
        )
        log_traceback = not exc.is_operational
    else:
        payload = StreamError(
            message=str(exc) if include_debug else GENERIC_STREAM_ERROR,
            code=ErrorCode.STREAM_ERROR.value,
            error_id=generate_error_id(),
            thread_id=thread_id,
            request_id=request_id,
        )
        log_traceback = True

    if include_debug:
        payload.debug = {"exception_type": type(exc).__name__, "exception_message": str(exc)}

    logger.error(
        f"[{payload.error_id}] Stream failed: {type(exc).__name__}: {exc}",
        exc_info=log_traceback,
        error_id=payload.error_id,
        error_code=payload.code,
        thread_id=thread_id,
    )
    return f"event: error\ndata: {json.dumps(payload.to_dict(), ensure_ascii=False, default=str)}\n\n"


class TurnStream:
    """One SSE response for one turn.

    Args:
        source: Builds the turn's event iterator from the cancellation token
        thread_id: Thread being streamed (for error frames and logs)
        request_id: Request id (for error frames)
        timeout: Seconds before the stream stops writing and cancels the turn
        grace: Seconds the producer may linger after cancellation
        is_disconnected: Polled while waiting for events (``Request.is_disconnected``)
        include_debug: Expose exception details in error frames
    """

    def __init__(
        self,
        source: EventSource,
        thread_id: str | None = None,
        request_id: str | None = None,
        timeout: float = 50.0,
        grace: float = 5.0,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
        include_debug: bool = False,
        poll_interval: float = DISCONNECT_POLL_INTERVAL,
    ):
        self.source = source
        self.thread_id = thread_id
        self.request_id = request_id
        self.timeout = timeout
        self.grace = grace
        self.is_disconnected = is_disconnected
        self.include_debug = include_debug
        self.poll_interval = poll_interval
        self.token = CancellationToken()
        self._producer: asyncio.Task[None] | None = None
        self._reaper: asyncio.Task[None] | None = None

    async def _produce(self, queue: asyncio.Queue[tuple[str, Any]]) -> None:
        try:
            async for event in self.source(self.token):
                await queue.put(("event", event))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put(("error", e))
        else:
            await queue.put(("done", None))

    async def _reap(self, reason: str) -> None:
        """Signal the producer, then hard-cancel it if it outlives the grace period."""
        producer = self._producer
        if producer is None or producer.done():
            return
        self.token.cancel(reason)
        try:
            await asyncio.wait_for(asyncio.shield(producer), timeout=self.grace)
        except asyncio.TimeoutError:
            logger.warning(
                f"Turn producer exceeded {self.grace}s grace after {reason}; cancelling",
                thread_id=self.thread_id,
            )
            producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer
        except Exception as e:
            # The stream is already closed; the error only goes to the log.
            logger.warning(f"Turn producer failed after {reason}: {e}", thread_id=self.thread_id)

    def _reap_in_background(self, reason: str) -> None:
        """Cancel the turn without holding the response open while it winds down."""
        self.token.cancel(reason)
        task = asyncio.create_task(self._reap(reason))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        self._reaper = task

    async def wait_closed(self) -> None:
        """Wait until an abandoned producer has finished or been cancelled."""
        if self._reaper is not None:
            await self._reaper

    async def frames(self) -> AsyncIterator[str]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._producer = asyncio.create_task(self._produce(queue))
        deadline = loop.time() + self.timeout
        reason = "stream closed"
        abandoned = False

        try:
            yield SSE_KEEPALIVE_FRAME
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    reason, abandoned = "timeout", True
                    logger.warning(f"Stream timed out after {self.timeout}s", thread_id=self.thread_id)
                    break

                try:
                    kind, payload = await asyncio.wait_for(queue.get(), timeout=min(remaining, self.poll_interval))
                except asyncio.TimeoutError:
                    if self.is_disconnected is not None and await self.is_disconnected():
                        reason, abandoned = "client disconnected", True
                        logger.info("Client disconnected from stream", thread_id=self.thread_id)
                        break
                    continue

                if kind == "event":
                    yield format_event(payload)
                    if payload.type == EVENT_INTERRUPT:
                        break
                elif kind == "done":
                    yield SSE_DONE_FRAME
                    break
                else:
                    yield format_error(payload, self.thread_id, self.request_id, self.include_debug)
                    break
        except (GeneratorExit, asyncio.CancelledError):
            # The server closed the response; clean up without blocking it.
            self._reap_in_background("client disconnected")
            raise

        if abandoned:
            self._reap_in_background(reason)
        else:
            # Ended by the turn itself; the producer is already unwinding and
            # releases the thread lock before the response closes.
            await self._reap(reason)

    def response(self) -> StreamingResponse:
        return StreamingResponse(self.frames(), media_type=SSE_MEDIA_TYPE, headers=dict(SSE_HEADERS))


__all__ = [
    "EventSource",
    "TurnStream",
    "format_error",
    "format_event",
]
