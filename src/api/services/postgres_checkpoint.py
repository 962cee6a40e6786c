"""
PostgreSQL checkpoint store.

One row per thread in ``checkpoints`` (JSONB state, upserted on every put).
The per-thread single-writer lock is a session-level advisory lock keyed by
``hashtext(thread_id)``, held on a dedicated pooled connection for the life
of the turn, so it also serializes turns across worker processes.
"""

from __future__ import annotations

import asyncio

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import asyncpg

from core.checkpoint import stamp
from core.exceptions import ThreadBusyError
from models.agent_models import Checkpoint
from utils.db_utils import acquire_connection, with_retry
from utils.logger import logger

LOCK_POLL_INTERVAL = 0.1


class PostgresCheckpointStore:
    """CheckpointStore backed by asyncpg."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @with_retry(max_attempts=3)
    async def get(self, thread_id: str) -> Checkpoint | None:
        async with acquire_connection(self.pool) as conn:
            raw = await conn.fetchval("SELECT state FROM checkpoints WHERE thread_id = $1", thread_id)
        if raw is None:
            return None
        return Checkpoint.model_validate_json(raw)

    async def put(self, thread_id: str, checkpoint: Checkpoint) -> Checkpoint:
        stored = stamp(checkpoint)
        async with acquire_connection(self.pool) as conn:
            await conn.execute(
                """
                INSERT INTO checkpoints (thread_id, version, state, updated_at)
                VALUES ($1, $2, $3::jsonb, now())
                ON CONFLICT (thread_id) DO UPDATE
                SET version = EXCLUDED.version,
                    state = EXCLUDED.state,
                    updated_at = EXCLUDED.updated_at
                """,
                thread_id,
                stored.version,
                stored.model_dump_json(),
            )
        return stored

    async def delete(self, thread_id: str) -> bool:
        async with acquire_connection(self.pool) as conn:
            status = await conn.execute("DELETE FROM checkpoints WHERE thread_id = $1", thread_id)
        return status.split()[-1] != "0"

    async def _try_lock(self, conn: asyncpg.Connection, thread_id: str, timeout: float | None) -> bool:
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            if await conn.fetchval("SELECT pg_try_advisory_lock(hashtext($1))", thread_id):
                return True
            if deadline is not None and loop.time() >= deadline:
                return False
            await asyncio.sleep(LOCK_POLL_INTERVAL)

    @asynccontextmanager
    async def lock(self, thread_id: str, timeout: float | None = None) -> AsyncIterator[None]:
        async with acquire_connection(self.pool, timeout=timeout) as conn:
            if not await self._try_lock(conn, thread_id, timeout):
                logger.warning(f"Turn lock wait timed out for thread {thread_id}", thread_id=thread_id)
                raise ThreadBusyError(thread_id)
            try:
                yield
            finally:
                # Releasing the connection resets it (pg_advisory_unlock_all) if this fails.
                await conn.execute("SELECT pg_advisory_unlock(hashtext($1))", thread_id)


__all__ = ["PostgresCheckpointStore"]
