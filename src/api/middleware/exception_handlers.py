"""
Global exception handlers for Agent Stream API.

Provides centralized error handling with consistent response formatting,
proper logging, and request context integration.
"""

from __future__ import annotations

import traceback

from typing import Any

import asyncpg

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from openai import (
    APIError as OpenAIAPIError,
    AuthenticationError as OpenAIAuthError,
    RateLimitError as OpenAIRateLimitError,
)
from pydantic import ValidationError as PydanticValidationError

from api.middleware.request_context import get_request_context, get_request_id
from core.constants import get_settings
from core.exceptions import AppException, RateLimitError, generate_error_id
from models.error_models import (
    ErrorCode,
    ErrorDetail,
    ErrorResponse,
    get_status_code,
)
from utils.logger import logger


def _create_error_response(
    code: ErrorCode,
    message: str,
    request: Request | None = None,
    details: list[ErrorDetail] | None = None,
    debug_info: dict[str, Any] | None = None,
    error_id: str | None = None,
) -> ErrorResponse:
    """Create a standardized error response.

    Args:
        code: Application error code
        message: Human-readable error message
        request: FastAPI request object for path extraction
        details: List of detailed error information
        debug_info: Debug information (only included in development)
        error_id: Correlation id of the error occurrence
    """
    return ErrorResponse(
        code=code,
        message=message,
        request_id=get_request_id(),
        error_id=error_id or generate_error_id(),
        path=request.url.path if request else None,
        details=details,
        debug=debug_info,
    )


def _log_error(
    error: Exception,
    code: ErrorCode,
    status_code: int,
    force_traceback: bool = False,
) -> None:
    """Log error with appropriate level and context."""
    ctx = get_request_context()
    log_context = ctx.to_log_context() if ctx else {}
    log_context["error_code"] = code.value
    log_context["status_code"] = status_code

    if status_code >= 500 or force_traceback:
        logger.error(
            f"Server error: {code.value} - {error}",
            exc_info=True,
            **log_context,
        )
    elif status_code >= 400:
        logger.warning(
            f"Client error: {code.value} - {error}",
            **log_context,
        )


def _include_debug() -> bool:
    return get_settings().include_error_details


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application-specific exceptions."""
    status_code = get_status_code(exc.code)

    include_debug = _include_debug()
    debug_info = None
    if include_debug:
        debug_info = {
            "exception_type": type(exc).__name__,
            "cause": str(exc.cause) if exc.cause else None,
        }

    details = None
    if exc.details:
        if "errors" in exc.details:
            details = [ErrorDetail(**e) for e in exc.details["errors"]]
        else:
            details = [ErrorDetail(message=str(v), field=k) for k, v in exc.details.items()]

    error_response = _create_error_response(
        code=exc.code,
        message=exc.message,
        request=request,
        details=details,
        debug_info=debug_info,
        error_id=exc.error_id,
    )

    _log_error(exc, exc.code, status_code, force_traceback=not exc.is_operational)

    headers = None
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(
        status_code=status_code,
        content=error_response.to_dict(include_debug=include_debug),
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPException with consistent formatting."""
    status_to_code = {
        400: ErrorCode.VALIDATION_ERROR,
        404: ErrorCode.RESOURCE_NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        423: ErrorCode.RESOURCE_LOCKED,
        429: ErrorCode.EXTERNAL_RATE_LIMITED,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        503: ErrorCode.EXTERNAL_TIMEOUT,
    }

    code = status_to_code.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    include_debug = _include_debug()
    debug_info = {"original_status": exc.status_code} if include_debug else None

    error_response = _create_error_response(
        code=code,
        message=message,
        request=request,
        debug_info=debug_info,
    )

    _log_error(exc, code, exc.status_code)

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.to_dict(include_debug=include_debug),
        headers=getattr(exc, "headers", None),
    )


def _details_from_errors(errors: Any) -> list[ErrorDetail]:
    return [
        ErrorDetail(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            code=error["type"],
        )
        for error in errors
    ]


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors from request parsing."""
    error_response = _create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        request=request,
        details=_details_from_errors(exc.errors()),
    )

    _log_error(exc, ErrorCode.VALIDATION_ERROR, 422)

    return JSONResponse(
        status_code=422,
        content=error_response.to_dict(),
    )


async def pydantic_exception_handler(request: Request, exc: PydanticValidationError) -> JSONResponse:
    """Handle Pydantic ValidationError from model validation."""
    error_response = _create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Data validation failed",
        request=request,
        details=_details_from_errors(exc.errors()),
    )

    _log_error(exc, ErrorCode.VALIDATION_ERROR, 422)

    return JSONResponse(
        status_code=422,
        content=error_response.to_dict(),
    )


async def openai_exception_handler(request: Request, exc: OpenAIAPIError) -> JSONResponse:
    """Handle OpenAI API errors that escaped the turn executor."""
    headers = None
    if isinstance(exc, OpenAIAuthError):
        code = ErrorCode.OPENAI_ERROR
        status_code = 502
        message = "Model provider authentication failed"
    elif isinstance(exc, OpenAIRateLimitError):
        code = ErrorCode.EXTERNAL_RATE_LIMITED
        status_code = 429
        message = "Model provider rate limit exceeded"
        retry_after = exc.response.headers.get("retry-after") if exc.response is not None else None
        if retry_after:
            headers = {"Retry-After": retry_after}
    else:
        code = ErrorCode.OPENAI_ERROR
        status_code = 502
        message = f"Model provider error: {exc}"

    include_debug = _include_debug()
    debug_info = None
    if include_debug:
        debug_info = {
            "openai_error_type": type(exc).__name__,
            "openai_error_code": getattr(exc, "code", None),
        }

    error_response = _create_error_response(
        code=code,
        message=message,
        request=request,
        debug_info=debug_info,
    )

    _log_error(exc, code, status_code)

    return JSONResponse(
        status_code=status_code,
        content=error_response.to_dict(include_debug=include_debug),
        headers=headers,
    )


async def asyncpg_exception_handler(request: Request, exc: asyncpg.PostgresError) -> JSONResponse:
    """Handle PostgreSQL database errors."""
    include_debug = _include_debug()
    debug_info = None
    if include_debug:
        debug_info = {
            "pg_error_code": getattr(exc, "sqlstate", None),
            "pg_error_class": type(exc).__name__,
        }

    error_response = _create_error_response(
        code=ErrorCode.DATABASE_ERROR,
        message="Database operation failed",
        request=request,
        debug_info=debug_info,
    )

    _log_error(exc, ErrorCode.DATABASE_ERROR, 500)

    return JSONResponse(
        status_code=500,
        content=error_response.to_dict(include_debug=include_debug),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions with graceful degradation."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True,
        request_id=get_request_id(),
        path=request.url.path,
    )

    include_debug = _include_debug()
    debug_info = None
    if include_debug:
        debug_info = {
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "traceback": traceback.format_exc(),
        }

    error_response = _create_error_response(
        code=ErrorCode.INTERNAL_UNEXPECTED,
        message="An unexpected error occurred",
        request=request,
        debug_info=debug_info,
    )

    return JSONResponse(
        status_code=500,
        content=error_response.to_dict(include_debug=include_debug),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Call this in main.py after creating the FastAPI app:
        register_exception_handlers(app)
    """
    # Starlette's signature expects Exception; covariant handlers work at runtime
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]

    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]

    app.add_exception_handler(PydanticValidationError, pydantic_exception_handler)  # type: ignore[arg-type]

    app.add_exception_handler(OpenAIAPIError, openai_exception_handler)  # type: ignore[arg-type]

    app.add_exception_handler(asyncpg.PostgresError, asyncpg_exception_handler)  # type: ignore[arg-type]

    # Catch-all for unexpected exceptions
    app.add_exception_handler(Exception, generic_exception_handler)


__all__ = [
    "app_exception_handler",
    "asyncpg_exception_handler",
    "generic_exception_handler",
    "http_exception_handler",
    "openai_exception_handler",
    "pydantic_exception_handler",
    "register_exception_handlers",
    "validation_exception_handler",
]
