"""
OpenAI client factory utilities.
Centralizes AsyncOpenAI client creation with consistent configuration.
"""

from __future__ import annotations

from typing import Any

import httpx

from openai import AsyncOpenAI

from utils.logger import logger

DEFAULT_CONNECT_TIMEOUT = 30.0  # Time to establish connection
DEFAULT_READ_TIMEOUT = 120.0  # Time between bytes of a response
DEFAULT_WRITE_TIMEOUT = 30.0  # Time to send request
DEFAULT_POOL_TIMEOUT = 30.0  # Time to acquire connection from pool


async def _log_request(request: httpx.Request) -> None:
    logger.debug(f"HTTP Request: {request.method} {request.url}", http_request=True)


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    logger.debug(
        f"HTTP Response: {response.status_code} {request.method} {request.url}",
        http_response=True,
        status_code=response.status_code,
    )


def create_http_client(
    enable_logging: bool = False,
    read_timeout: float | None = None,
) -> httpx.AsyncClient:
    """Create HTTP client with explicit timeouts.

    Args:
        enable_logging: Log one line per request and response (bodies are never logged)
        read_timeout: Read timeout in seconds

    Returns:
        Configured httpx.AsyncClient
    """
    effective_read_timeout = read_timeout if read_timeout is not None else DEFAULT_READ_TIMEOUT
    timeout = httpx.Timeout(
        connect=DEFAULT_CONNECT_TIMEOUT,
        read=effective_read_timeout,
        write=DEFAULT_WRITE_TIMEOUT,
        pool=DEFAULT_POOL_TIMEOUT,
    )

    if enable_logging:
        return httpx.AsyncClient(
            timeout=timeout,
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )

    return httpx.AsyncClient(timeout=timeout)


def create_openai_client(
    api_key: str | None,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncOpenAI:
    """Create AsyncOpenAI client with consistent configuration.

    Args:
        api_key: OpenAI (or OpenAI-compatible provider) API key
        base_url: Optional base URL for compatible endpoints
        http_client: Optional httpx client with custom timeouts

    Returns:
        Configured AsyncOpenAI client
    """
    kwargs: dict[str, Any] = {"api_key": api_key, "http_client": http_client}
    if base_url:
        kwargs["base_url"] = base_url
    return AsyncOpenAI(**kwargs)
