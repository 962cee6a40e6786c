"""
Thread lifecycle: idempotent ensure, title derivation and re-title policy,
rename, list and delete.

Thread metadata lives in a relational ThreadStore; conversation state lives
in the CheckpointStore. Deleting a thread removes both, which discards any
pending interrupt.
"""

from __future__ import annotations

import uuid

from datetime import UTC, datetime
from typing import Any, Protocol

from core.checkpoint import CheckpointStore
from core.constants import (
    NEW_THREAD_TITLE,
    THREAD_FALLBACK_TITLE_PREFIX,
    THREAD_LIST_LIMIT,
    THREAD_TITLE_ELLIPSIS,
    THREAD_TITLE_MAX_LENGTH,
)
from core.exceptions import ThreadNotFoundError
from models.agent_models import InterruptState
from models.thread_models import ThreadRecord
from utils.logger import logger


def fallback_title(now: datetime | None = None) -> str:
    """Timestamp title used when there is no seed text."""
    now = now or datetime.now()
    return f"{THREAD_FALLBACK_TITLE_PREFIX} {now:%H:%M}"


def derive_title(seed: str | None, now: datetime | None = None) -> str:
    """Title from the first characters of ``seed``, or the timestamp fallback.

    >>> derive_title("What is the weather like in Paris today?")
    'What is the weather like in Pa...'
    """
    text = (seed or "").strip()
    if not text:
        return fallback_title(now)
    text = " ".join(text.split())
    if len(text) > THREAD_TITLE_MAX_LENGTH:
        return text[:THREAD_TITLE_MAX_LENGTH] + THREAD_TITLE_ELLIPSIS
    return text


def is_placeholder_title(title: str) -> bool:
    """True for titles the system chose without content."""
    return title == NEW_THREAD_TITLE or title.startswith(f"{THREAD_FALLBACK_TITLE_PREFIX} ")


def new_thread_id() -> str:
    return f"thread_{uuid.uuid4().hex}"


class ThreadStore(Protocol):
    """Relational store of thread metadata."""

    async def get(self, thread_id: str) -> ThreadRecord | None: ...

    async def create(self, thread_id: str, title: str, owner_id: str | None = None) -> ThreadRecord: ...

    async def update(self, thread_id: str, **fields: Any) -> ThreadRecord | None: ...

    async def delete(self, thread_id: str) -> bool: ...

    async def list_threads(self, owner_id: str | None = None, limit: int = THREAD_LIST_LIMIT) -> list[ThreadRecord]: ...


class InMemoryThreadStore:
    """Thread store for development and tests."""

    allowed_fields = frozenset({"title", "is_named", "owner_id"})

    def __init__(self) -> None:
        self._threads: dict[str, ThreadRecord] = {}

    async def get(self, thread_id: str) -> ThreadRecord | None:
        record = self._threads.get(thread_id)
        return record.model_copy() if record else None

    async def create(self, thread_id: str, title: str, owner_id: str | None = None) -> ThreadRecord:
        existing = self._threads.get(thread_id)
        if existing:
            return existing.model_copy()
        record = ThreadRecord(id=thread_id, title=title, owner_id=owner_id)
        self._threads[thread_id] = record
        return record.model_copy()

    async def update(self, thread_id: str, **fields: Any) -> ThreadRecord | None:
        record = self._threads.get(thread_id)
        if record is None:
            return None
        updates = {k: v for k, v in fields.items() if k in self.allowed_fields}
        updates["updated_at"] = datetime.now(UTC)
        updated = record.model_copy(update=updates)
        self._threads[thread_id] = updated
        return updated.model_copy()

    async def delete(self, thread_id: str) -> bool:
        return self._threads.pop(thread_id, None) is not None

    async def list_threads(self, owner_id: str | None = None, limit: int = THREAD_LIST_LIMIT) -> list[ThreadRecord]:
        records = [r for r in self._threads.values() if owner_id is None or r.owner_id == owner_id]
        records.sort(key=lambda r: r.updated_at, reverse=True)
        return [r.model_copy() for r in records[:limit]]


class ThreadLifecycleManager:
    """Owns thread metadata and keeps it consistent with checkpoints."""

    def __init__(
        self,
        threads: ThreadStore,
        checkpoints: CheckpointStore,
        lock_timeout: float | None = None,
    ):
        self.threads = threads
        self.checkpoints = checkpoints
        self.lock_timeout = lock_timeout

    async def ensure_thread(
        self,
        thread_id: str,
        title_seed: str | None = None,
        owner_id: str | None = None,
    ) -> ThreadRecord:
        """Return the thread, creating it if needed.

        A thread still on a placeholder title that the user never renamed is
        re-titled once ``title_seed`` carries real content.
        """
        record = await self.threads.get(thread_id)
        if record is None:
            record = await self.threads.create(thread_id, derive_title(title_seed), owner_id=owner_id)
            logger.info(f"Created thread {thread_id}", thread_id=thread_id)
            return record

        if title_seed and title_seed.strip() and not record.is_named and is_placeholder_title(record.title):
            updated = await self.threads.update(thread_id, title=derive_title(title_seed))
            if updated is not None:
                logger.debug(f"Re-titled thread {thread_id}", thread_id=thread_id)
                return updated
        return record

    async def create_thread(
        self,
        thread_id: str | None = None,
        title: str | None = None,
        owner_id: str | None = None,
    ) -> ThreadRecord:
        """Explicit "new thread" action."""
        thread_id = thread_id or new_thread_id()
        record = await self.threads.create(thread_id, title or NEW_THREAD_TITLE, owner_id=owner_id)
        if title:
            record = await self.threads.update(thread_id, is_named=True) or record
        return record

    async def get_thread(self, thread_id: str) -> ThreadRecord:
        record = await self.threads.get(thread_id)
        if record is None:
            raise ThreadNotFoundError(thread_id)
        return record

    async def rename_thread(self, thread_id: str, title: str) -> ThreadRecord:
        """Set a user-chosen title. It is never overwritten afterwards."""
        record = await self.threads.update(thread_id, title=title, is_named=True)
        if record is None:
            raise ThreadNotFoundError(thread_id)
        return record

    async def touch(self, thread_id: str) -> None:
        await self.threads.update(thread_id)

    async def list_threads(self, owner_id: str | None = None, limit: int = THREAD_LIST_LIMIT) -> list[ThreadRecord]:
        return await self.threads.list_threads(owner_id=owner_id, limit=limit)

    async def delete_thread(self, thread_id: str) -> bool:
        """Delete metadata and checkpoint.

        Waits for an in-flight turn on the thread so the checkpoint is not
        re-created by a writer that already holds it.
        """
        async with self.checkpoints.lock(thread_id, timeout=self.lock_timeout):
            checkpoint = await self.checkpoints.get(thread_id)
            if checkpoint is not None and checkpoint.is_suspended:
                logger.info(
                    f"Discarding pending interrupt of deleted thread {thread_id}",
                    thread_id=thread_id,
                    interrupt_state=InterruptState.DISCARDED.value,
                )
            await self.checkpoints.delete(thread_id)
            deleted = await self.threads.delete(thread_id)

        if not deleted and checkpoint is None:
            raise ThreadNotFoundError(thread_id)
        logger.info(f"Deleted thread {thread_id}", thread_id=thread_id)
        return True


__all__ = [
    "InMemoryThreadStore",
    "ThreadLifecycleManager",
    "ThreadStore",
    "derive_title",
    "fallback_title",
    "is_placeholder_title",
    "new_thread_id",
]
