"""
Thread management endpoints.

Threads are the user-visible conversation list; deleting one also deletes
its checkpoint (and with it any pending interrupt).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Path, Query

from api.dependencies import Threads
from api.middleware.request_context import update_request_context
from core.constants import THREAD_LIST_LIMIT
from models.thread_models import (
    CreateThreadRequest,
    DeleteThreadRequest,
    RenameThreadRequest,
    ThreadResponse,
)

router = APIRouter()


@router.get(
    "",
    response_model=list[ThreadResponse],
    summary="List threads",
    description="Most recently updated threads first.",
)
async def list_threads(
    threads: Threads,
    owner_id: Annotated[str | None, Query(alias="ownerId")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = THREAD_LIST_LIMIT,
) -> list[ThreadResponse]:
    records = await threads.list_threads(owner_id=owner_id, limit=limit)
    return [ThreadResponse.from_record(record) for record in records]


@router.post(
    "",
    response_model=ThreadResponse,
    status_code=201,
    summary="Create thread",
    description="Explicit new-thread action; the title is derived from the first message unless given here.",
)
async def create_thread(
    threads: Threads,
    body: Annotated[CreateThreadRequest | None, Body()] = None,
) -> ThreadResponse:
    body = body or CreateThreadRequest()
    record = await threads.create_thread(thread_id=body.thread_id, title=body.title)
    update_request_context(thread_id=record.id)
    return ThreadResponse.from_record(record)


@router.get(
    "/{thread_id}",
    response_model=ThreadResponse,
    summary="Get thread",
)
async def get_thread(
    threads: Threads,
    thread_id: Annotated[str, Path(min_length=1, max_length=100)],
) -> ThreadResponse:
    return ThreadResponse.from_record(await threads.get_thread(thread_id))


@router.patch(
    "",
    response_model=ThreadResponse,
    summary="Rename thread",
    description="Sets a user-chosen title; it is never replaced by an automatic title afterwards.",
)
async def rename_thread(threads: Threads, body: RenameThreadRequest) -> ThreadResponse:
    update_request_context(thread_id=body.thread_id)
    record = await threads.rename_thread(body.thread_id, body.title)
    return ThreadResponse.from_record(record)


@router.delete(
    "",
    summary="Delete thread",
    description="Deletes the thread and its checkpoint, discarding any pending interrupt.",
)
async def delete_thread(threads: Threads, body: Annotated[DeleteThreadRequest, Body()]) -> dict[str, object]:
    update_request_context(thread_id=body.thread_id)
    await threads.delete_thread(body.thread_id)
    return {"success": True, "message": "Thread deleted successfully."}
