"""
Checkpoint store contract and the in-process implementation.

A store keeps the latest Checkpoint per thread id and provides the
single-writer guarantee: ``lock(thread_id)`` must be held from the moment a
turn reads the checkpoint until it finishes or suspends. Writes are atomic
per key.
"""

from __future__ import annotations

import asyncio

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import UTC, datetime
from typing import Protocol

from core.exceptions import ThreadBusyError
from models.agent_models import Checkpoint
from utils.logger import logger


class CheckpointStore(Protocol):
    """Durable key-value store of checkpoints keyed by thread id."""

    async def get(self, thread_id: str) -> Checkpoint | None:
        """Return the latest checkpoint, or None if the thread has none."""
        ...

    async def put(self, thread_id: str, checkpoint: Checkpoint) -> Checkpoint:
        """Persist ``checkpoint`` as the latest state and return the stored copy."""
        ...

    async def delete(self, thread_id: str) -> bool:
        """Delete the checkpoint. Returns True if one existed."""
        ...

    def lock(self, thread_id: str, timeout: float | None = None) -> AbstractAsyncContextManager[None]:
        """Exclusive per-thread critical section.

        Raises:
            ThreadBusyError: If the lock is not acquired within ``timeout`` seconds.
        """
        ...


def stamp(checkpoint: Checkpoint) -> Checkpoint:
    """Copy of ``checkpoint`` with the next version and a fresh timestamp."""
    return checkpoint.model_copy(
        update={"version": checkpoint.version + 1, "updated_at": datetime.now(UTC).isoformat()},
        deep=True,
    )


class InMemoryCheckpointStore:
    """Checkpoint store for development and tests.

    Checkpoints are kept as JSON so callers never share mutable state with
    the store. Per-thread asyncio locks are dropped once nobody holds or
    waits for them.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_refs: dict[str, int] = {}

    async def get(self, thread_id: str) -> Checkpoint | None:
        raw = self._data.get(thread_id)
        if raw is None:
            return None
        return Checkpoint.model_validate_json(raw)

    async def put(self, thread_id: str, checkpoint: Checkpoint) -> Checkpoint:
        stored = stamp(checkpoint)
        self._data[thread_id] = stored.model_dump_json()
        return stored

    async def delete(self, thread_id: str) -> bool:
        return self._data.pop(thread_id, None) is not None

    def is_locked(self, thread_id: str) -> bool:
        lock = self._locks.get(thread_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def lock(self, thread_id: str, timeout: float | None = None) -> AsyncIterator[None]:
        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._lock_refs[thread_id] = self._lock_refs.get(thread_id, 0) + 1
        try:
            try:
                if timeout is None:
                    await lock.acquire()
                else:
                    await asyncio.wait_for(lock.acquire(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Turn lock wait timed out for thread {thread_id}", thread_id=thread_id)
                raise ThreadBusyError(thread_id) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._lock_refs[thread_id] -= 1
            if self._lock_refs[thread_id] == 0:
                del self._lock_refs[thread_id]
                self._locks.pop(thread_id, None)


__all__ = [
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "stamp",
]
