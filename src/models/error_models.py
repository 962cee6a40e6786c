"""
Standardized error response models for Agent Stream API.

Provides consistent error formatting across REST and event-stream endpoints
with support for request tracking, error categorization, and debugging context.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, Enum):
    """Application-specific error codes for categorization."""

    # Validation errors (2xxx)
    VALIDATION_ERROR = "VAL_2001"
    VALIDATION_MISSING_FIELD = "VAL_2002"
    VALIDATION_INVALID_FORMAT = "VAL_2003"
    VALIDATION_INVALID_DECISION = "VAL_2004"

    # Resource errors (3xxx)
    RESOURCE_NOT_FOUND = "RES_3001"
    RESOURCE_ALREADY_EXISTS = "RES_3002"
    RESOURCE_CONFLICT = "RES_3003"
    RESOURCE_LOCKED = "RES_3004"

    # Thread errors (4xxx)
    THREAD_NOT_FOUND = "THR_4001"
    INTERRUPT_NOT_FOUND = "THR_4002"

    # Tool errors (5xxx)
    TOOL_NOT_FOUND = "TOOL_5001"
    TOOL_CONFIG_INVALID = "TOOL_5002"
    TOOL_EXECUTION_FAILED = "TOOL_5003"

    # Agent and stream errors (6xxx)
    AGENT_ERROR = "AGT_6001"
    AGENT_STEP_LIMIT = "AGT_6002"
    STREAM_ERROR = "AGT_6003"

    # External service errors (7xxx)
    EXTERNAL_SERVICE_ERROR = "EXT_7001"
    EXTERNAL_TIMEOUT = "EXT_7002"
    EXTERNAL_RATE_LIMITED = "EXT_7003"
    OPENAI_ERROR = "EXT_7010"
    MCP_SERVER_ERROR = "EXT_7020"

    # Database errors (8xxx)
    DATABASE_ERROR = "DB_8001"
    DATABASE_CONNECTION_FAILED = "DB_8002"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "INT_9001"
    INTERNAL_CONFIGURATION_ERROR = "INT_9002"
    INTERNAL_UNEXPECTED = "INT_9999"


class ErrorDetail(BaseModel):
    """Detailed information about a specific validation or sub-error."""

    field: str | None = None
    message: str
    code: str | None = None
    value: Any | None = Field(default=None, exclude=True)  # Excluded from response for security


class ErrorResponse(BaseModel):
    """Standardized error response model for REST endpoints.

    Example response:
    {
        "error": {
            "code": "THR_4002",
            "message": "No pending interrupt for thread 'abc'",
            "request_id": "req_abc123",
            "error_id": "err_1736937000000_k3j9x2",
            "timestamp": "2025-01-15T10:30:00Z",
            "path": "/api/agent/resume"
        }
    }
    """

    code: ErrorCode
    message: str
    request_id: str | None = None
    error_id: str | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    details: list[ErrorDetail] | None = None
    path: str | None = None
    # Debug info - only included in development mode
    debug: dict[str, Any] | None = Field(default=None, exclude=True)

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        """Convert to dictionary for JSON response.

        Args:
            include_debug: Include debug information (only in development)
        """
        data = self.model_dump(mode="json", exclude_none=True)
        if include_debug and self.debug:
            data["debug"] = self.debug
        return {"error": data}


class StreamError(BaseModel):
    """Payload of the terminal ``error`` frame of an event stream.

    Example:
    {
        "message": "Stream processing failed",
        "code": "AGT_6003",
        "errorId": "err_1736937000000_k3j9x2",
        "threadId": "thread_42",
        "requestId": "req_abc123"
    }
    """

    model_config = ConfigDict(populate_by_name=True)

    message: str
    code: str
    error_id: str = Field(alias="errorId")
    thread_id: str | None = Field(default=None, alias="threadId")
    request_id: str | None = Field(default=None, alias="requestId")
    debug: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for the SSE data line."""
        return self.model_dump(by_alias=True, exclude_none=True)


# HTTP status code mappings for error codes
ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    # 404 Not Found
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.THREAD_NOT_FOUND: 404,
    ErrorCode.INTERRUPT_NOT_FOUND: 404,
    ErrorCode.TOOL_NOT_FOUND: 404,
    # 409 Conflict
    ErrorCode.RESOURCE_ALREADY_EXISTS: 409,
    ErrorCode.RESOURCE_CONFLICT: 409,
    # 422 Unprocessable Entity
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.VALIDATION_MISSING_FIELD: 422,
    ErrorCode.VALIDATION_INVALID_FORMAT: 422,
    ErrorCode.VALIDATION_INVALID_DECISION: 422,
    ErrorCode.TOOL_CONFIG_INVALID: 422,
    # 423 Locked
    ErrorCode.RESOURCE_LOCKED: 423,
    # 429 Too Many Requests
    ErrorCode.EXTERNAL_RATE_LIMITED: 429,
    # 500 Internal Server Error
    ErrorCode.TOOL_EXECUTION_FAILED: 500,
    ErrorCode.AGENT_ERROR: 500,
    ErrorCode.AGENT_STEP_LIMIT: 500,
    ErrorCode.STREAM_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.INTERNAL_CONFIGURATION_ERROR: 500,
    ErrorCode.INTERNAL_UNEXPECTED: 500,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.DATABASE_CONNECTION_FAILED: 500,
    # 502 Bad Gateway
    ErrorCode.EXTERNAL_SERVICE_ERROR: 502,
    ErrorCode.OPENAI_ERROR: 502,
    ErrorCode.MCP_SERVER_ERROR: 502,
    # 503 Service Unavailable
    ErrorCode.EXTERNAL_TIMEOUT: 503,
}


def get_status_code(error_code: ErrorCode) -> int:
    """Get HTTP status code for an error code."""
    return ERROR_CODE_TO_STATUS.get(error_code, 500)


__all__ = [
    "ERROR_CODE_TO_STATUS",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "StreamError",
    "get_status_code",
]
