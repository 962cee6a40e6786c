"""
Application exception hierarchy.

Every error the turn pipeline raises on purpose derives from AppException and
carries an ErrorCode, a unique error id for log correlation and a timestamp.
HTTP handlers in api.middleware.exception_handlers convert them once at the
outermost layer; stream handlers convert them into a terminal error frame.
"""

from __future__ import annotations

import secrets
import time

from datetime import UTC, datetime
from typing import Any

from models.error_models import ErrorCode, ErrorDetail


def generate_error_id() -> str:
    """Generate a correlation id for one error occurrence.

    Format: err_<epoch millis>_<8 hex chars>
    """
    return f"err_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class AppException(Exception):
    """Base application exception with error code support.

    Operational errors are expected failures (bad input, missing thread).
    Non-operational errors indicate a bug or a broken dependency and are
    always logged with a traceback.

    Example:
        raise AppException(
            code=ErrorCode.THREAD_NOT_FOUND,
            message="Thread not found",
            details={"thread_id": thread_id}
        )
    """

    is_operational = True

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        self.cause = cause
        self.error_id = generate_error_id()
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(message)


class ValidationError(AppException):
    """Invalid client input, with optional field-level details."""

    def __init__(
        self,
        message: str = "Validation error",
        errors: list[ErrorDetail] | None = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            details={"errors": [e.model_dump() for e in errors]} if errors else None,
        )
        self.errors = errors or []


class NotFoundError(AppException):
    """Resource not found errors."""

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        code: ErrorCode = ErrorCode.RESOURCE_NOT_FOUND,
        message: str | None = None,
    ):
        if message is None:
            message = f"{resource} not found"
            if resource_id:
                message = f"{resource} '{resource_id}' not found"
        super().__init__(code=code, message=message, details={"resource": resource, "id": resource_id})
        self.resource = resource
        self.resource_id = resource_id


class ThreadNotFoundError(NotFoundError):
    """Thread or its checkpoint does not exist."""

    def __init__(self, thread_id: str):
        super().__init__(resource="Thread", resource_id=thread_id, code=ErrorCode.THREAD_NOT_FOUND)


class InterruptNotFoundError(NotFoundError):
    """A resume was submitted for a thread with no pending interrupt."""

    def __init__(self, thread_id: str):
        super().__init__(
            resource="Interrupt",
            resource_id=thread_id,
            code=ErrorCode.INTERRUPT_NOT_FOUND,
            message=f"No pending interrupt for thread '{thread_id}'",
        )


class AgentError(AppException):
    """Turn execution failure (model invocation, step limit, broken state)."""

    is_operational = False

    def __init__(
        self,
        message: str,
        thread_id: str | None = None,
        provider: str | None = None,
        model: str | None = None,
        code: ErrorCode = ErrorCode.AGENT_ERROR,
        cause: Exception | None = None,
    ):
        details = {
            key: value
            for key, value in {"thread_id": thread_id, "provider": provider, "model": model}.items()
            if value is not None
        }
        super().__init__(code=code, message=message, details=details or None, cause=cause)
        self.thread_id = thread_id
        self.provider = provider
        self.model = model


class ThreadBusyError(AgentError):
    """Another turn is already in flight for this thread."""

    is_operational = True

    def __init__(self, thread_id: str):
        super().__init__(
            message=f"Thread '{thread_id}' is busy with another turn",
            thread_id=thread_id,
            code=ErrorCode.RESOURCE_LOCKED,
        )


class ExternalServiceError(AppException):
    """External service errors (model provider, search API, etc.)."""

    def __init__(
        self,
        service: str,
        message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        cause: Exception | None = None,
    ):
        super().__init__(
            code=code,
            message=f"{service}: {message}",
            details={"service": service},
            cause=cause,
        )
        self.service = service


class MCPError(ExternalServiceError):
    """MCP server connection or tool failure.

    The turn path catches this and continues without MCP tools.
    """

    def __init__(
        self,
        message: str,
        mcp_url: str | None = None,
        tool_name: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(service="MCP", message=message, code=ErrorCode.MCP_SERVER_ERROR, cause=cause)
        if mcp_url:
            self.details = {**(self.details or {}), "mcp_url": mcp_url}
        if tool_name:
            self.details = {**(self.details or {}), "tool_name": tool_name}
        self.mcp_url = mcp_url
        self.tool_name = tool_name


class RateLimitError(AppException):
    """Upstream or local rate limit; clients should retry after ``retry_after`` seconds."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: int | None = None):
        super().__init__(
            code=ErrorCode.EXTERNAL_RATE_LIMITED,
            message=message,
            details={"retry_after": retry_after} if retry_after is not None else None,
        )
        self.retry_after = retry_after


__all__ = [
    "AgentError",
    "AppException",
    "ExternalServiceError",
    "InterruptNotFoundError",
    "MCPError",
    "NotFoundError",
    "RateLimitError",
    "ThreadBusyError",
    "ThreadNotFoundError",
    "ValidationError",
    "generate_error_id",
]
