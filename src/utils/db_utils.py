"""Database utilities for connection management and resilience.

Provides:
- Connection pool factory with production configuration
- Retry decorator for transient database failures
- Health check utilities
- Connection context managers with timeouts
"""

from __future__ import annotations

import asyncio
import functools
import random

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import asyncpg

from core.exceptions import AppException
from models.error_models import ErrorCode
from utils.logger import logger

P = ParamSpec("P")
T = TypeVar("T")


class ConnectionPoolExhausted(AppException):
    """Raised when the pool cannot be created or a connection cannot be acquired in time."""

    is_operational = False

    def __init__(self, message: str):
        super().__init__(code=ErrorCode.DATABASE_CONNECTION_FAILED, message=message)


async def create_database_pool(
    dsn: str,
    *,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    connection_timeout: float = 10.0,
    statement_cache_size: int = 100,
    max_inactive_connection_lifetime: float = 300.0,
) -> asyncpg.Pool:
    """Create a production-configured database connection pool.

    Args:
        dsn: PostgreSQL connection string
        min_size: Minimum connections to maintain
        max_size: Maximum connections allowed
        command_timeout: Default query timeout in seconds
        connection_timeout: Timeout for establishing the pool
        statement_cache_size: Prepared statement cache per connection
        max_inactive_connection_lifetime: Close idle connections after this time

    Returns:
        Configured asyncpg connection pool

    Raises:
        ConnectionPoolExhausted: If initial connections cannot be established
    """

    async def init_connection(conn: asyncpg.Connection) -> None:
        await conn.execute(f"SET statement_timeout = '{int(command_timeout * 1000)}'")

    try:
        pool = await asyncio.wait_for(
            asyncpg.create_pool(
                dsn=dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=command_timeout,
                statement_cache_size=statement_cache_size,
                max_inactive_connection_lifetime=max_inactive_connection_lifetime,
                init=init_connection,
            ),
            timeout=connection_timeout,
        )

        if pool is None:
            raise ConnectionPoolExhausted("Failed to create connection pool")

        return pool

    except asyncio.TimeoutError as e:
        raise ConnectionPoolExhausted(f"Connection pool creation timed out after {connection_timeout}s") from e
    except ConnectionPoolExhausted:
        raise
    except Exception as e:
        raise ConnectionPoolExhausted(f"Failed to create connection pool: {e}") from e


@asynccontextmanager
async def acquire_connection(
    pool: asyncpg.Pool,
    *,
    timeout: float | None = None,
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a database connection with timeout and proper error handling.

    Raises:
        ConnectionPoolExhausted: If connection cannot be acquired within timeout
    """
    try:
        async with pool.acquire(timeout=timeout) as conn:
            yield conn
    except asyncio.TimeoutError as e:
        raise ConnectionPoolExhausted(
            f"Could not acquire database connection within {timeout}s - pool may be exhausted"
        ) from e


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 5.0,
    retryable_exceptions: tuple[type[Exception], ...] = (
        asyncpg.PostgresConnectionError,
        asyncpg.InterfaceError,
        ConnectionPoolExhausted,
    ),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for retrying idempotent database operations on transient failures.

    Uses exponential backoff with jitter to prevent thundering herd.

    Example:
        @with_retry(max_attempts=3)
        async def get(self, thread_id):
            async with self.pool.acquire() as conn:
                return await conn.fetchrow("SELECT ...", thread_id)
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:  # noqa: PERF203
                    if attempt + 1 >= max_attempts:
                        logger.error(
                            f"Database operation failed after {max_attempts} attempts: {e}",
                            exc_info=True,
                        )
                        raise

                    delay = min(base_delay * (2**attempt) + random.uniform(0, 0.5), max_delay)
                    logger.warning(
                        f"Database operation failed (attempt {attempt + 1}/{max_attempts}), "
                        f"retrying in {delay:.2f}s: {e}"
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("Retry loop exited unexpectedly")

        return wrapper

    return decorator


async def check_pool_health(pool: asyncpg.Pool) -> dict[str, Any]:
    """Check database pool health and return statistics."""
    error: str | None = None
    try:
        async with acquire_connection(pool, timeout=5.0) as conn:
            result = await conn.fetchval("SELECT 1")
            is_healthy = result == 1
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        is_healthy = False
        error = str(e)

    return {
        "healthy": is_healthy,
        "pool_size": pool.get_size(),
        "pool_free": pool.get_idle_size(),
        "pool_used": pool.get_size() - pool.get_idle_size(),
        "error": error,
    }


async def graceful_pool_close(pool: asyncpg.Pool, timeout: float = 10.0) -> None:
    """Close the pool after active connections are released (or ``timeout`` expires)."""
    loop = asyncio.get_running_loop()
    start = loop.time()
    while pool.get_size() > pool.get_idle_size():
        if loop.time() - start > timeout:
            logger.warning(
                f"Timeout waiting for connections to drain, "
                f"forcing close ({pool.get_size() - pool.get_idle_size()} active)"
            )
            break
        await asyncio.sleep(0.1)

    await pool.close()
    logger.info("Database pool closed")


__all__ = [
    "ConnectionPoolExhausted",
    "acquire_connection",
    "check_pool_health",
    "create_database_pool",
    "graceful_pool_close",
    "with_retry",
]
