"""
Health check API schemas.

Response models for health, readiness, and liveness probes.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class DatabaseHealth(BaseModel):
    """Database connection pool health."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "healthy": True,
                "pool_size": 10,
                "pool_free": 8,
                "pool_used": 2,
            }
        }
    )

    healthy: bool = Field(..., description="Database is accessible")
    pool_size: int = Field(default=0, ge=0, description="Total pool size")
    pool_free: int = Field(default=0, ge=0, description="Available connections")
    pool_used: int = Field(default=0, ge=0, description="Active connections")
    error: str | None = Field(default=None, description="Error if unhealthy")


class ToolsHealth(BaseModel):
    """Tool registry status."""

    registered: int = Field(default=0, ge=0, description="Registered built-in tools")
    enabled: int = Field(default=0, ge=0, description="Enabled built-in tools")


class HealthResponse(BaseModel):
    """Overall service health."""

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    checkpoint_backend: str = Field(..., description="'postgres' or 'memory'")
    database: DatabaseHealth | None = Field(default=None, description="Absent with the in-memory backend")
    tools: ToolsHealth


class ReadinessResponse(BaseModel):
    ready: bool
    error: str | None = None


class LivenessResponse(BaseModel):
    alive: bool = True


__all__ = [
    "DatabaseHealth",
    "HealthResponse",
    "LivenessResponse",
    "ReadinessResponse",
    "ToolsHealth",
]
