"""
PostgreSQL thread metadata store.
"""

from __future__ import annotations

from typing import Any

import asyncpg

from core.constants import THREAD_LIST_LIMIT
from models.thread_models import ThreadRecord
from utils.db_utils import acquire_connection, with_retry

_COLUMNS = "id, title, owner_id, is_named, created_at, updated_at"


class PostgresThreadStore:
    """ThreadStore backed by the ``threads`` table."""

    allowed_fields = ("title", "is_named", "owner_id")

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @with_retry(max_attempts=3)
    async def get(self, thread_id: str) -> ThreadRecord | None:
        async with acquire_connection(self.pool) as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM threads WHERE id = $1", thread_id)
        return ThreadRecord(**dict(row)) if row else None

    async def create(self, thread_id: str, title: str, owner_id: str | None = None) -> ThreadRecord:
        """Insert the thread, or return the existing one if the id is taken."""
        async with acquire_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO threads (id, title, owner_id)
                VALUES ($1, $2, $3)
                ON CONFLICT (id) DO NOTHING
                RETURNING {_COLUMNS}
                """,
                thread_id,
                title,
                owner_id,
            )
            if row is None:
                row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM threads WHERE id = $1", thread_id)
        return ThreadRecord(**dict(row))

    async def update(self, thread_id: str, **fields: Any) -> ThreadRecord | None:
        """Update allowed fields and bump ``updated_at``; no fields just touches the row."""
        updates = {key: value for key, value in fields.items() if key in self.allowed_fields}
        assignments = [f"{key} = ${index}" for index, key in enumerate(updates, start=2)]
        assignments.append("updated_at = now()")

        async with acquire_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"UPDATE threads SET {', '.join(assignments)} WHERE id = $1 RETURNING {_COLUMNS}",
                thread_id,
                *updates.values(),
            )
        return ThreadRecord(**dict(row)) if row else None

    async def delete(self, thread_id: str) -> bool:
        async with acquire_connection(self.pool) as conn:
            status = await conn.execute("DELETE FROM threads WHERE id = $1", thread_id)
        return status.split()[-1] != "0"

    @with_retry(max_attempts=3)
    async def list_threads(self, owner_id: str | None = None, limit: int = THREAD_LIST_LIMIT) -> list[ThreadRecord]:
        async with acquire_connection(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM threads
                WHERE $1::text IS NULL OR owner_id = $1
                ORDER BY updated_at DESC
                LIMIT $2
                """,
                owner_id,
                limit,
            )
        return [ThreadRecord(**dict(row)) for row in rows]


__all__ = ["PostgresThreadStore"]
