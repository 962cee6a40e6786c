"""
Health check endpoints.

Provides health, readiness, and liveness probes.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from api.dependencies import DB, AppSettings, Registry
from models.schemas.health import (
    DatabaseHealth,
    HealthResponse,
    LivenessResponse,
    ReadinessResponse,
    ToolsHealth,
)
from utils.db_utils import check_pool_health

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Health of the checkpoint backend and the tool registry.",
    responses={
        200: {
            "description": "System health status",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "checkpoint_backend": "postgres",
                        "database": {"healthy": True, "pool_size": 10, "pool_free": 8, "pool_used": 2},
                        "tools": {"registered": 4, "enabled": 4},
                    }
                }
            },
        }
    },
    tags=["Health"],
)
async def health_check(db: DB, registry: Registry, settings: AppSettings) -> HealthResponse:
    """Comprehensive health check endpoint."""
    database = None
    if db is not None:
        data = await check_pool_health(db)
        database = DatabaseHealth(
            healthy=data["healthy"],
            pool_size=data["pool_size"],
            pool_free=data["pool_free"],
            pool_used=data["pool_used"],
            error=data["error"],
        )

    descriptors = registry.metadata()
    tools = ToolsHealth(registered=len(descriptors), enabled=sum(1 for d in descriptors if d.enabled))

    if database is not None and not database.healthy:
        status = "unhealthy"
    elif tools.enabled == 0:
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        version=settings.app_version,
        checkpoint_backend=settings.checkpoint_backend,
        database=database,
        tools=tools,
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    responses={
        503: {
            "description": "Service not ready",
            "content": {"application/json": {"example": {"ready": False, "error": "Database unavailable"}}},
        },
    },
    tags=["Health"],
)
async def readiness_check(db: DB) -> ReadinessResponse | JSONResponse:
    """Kubernetes-style readiness probe."""
    if db is None:
        return ReadinessResponse(ready=True)
    try:
        async with db.acquire(timeout=5.0) as conn:
            await conn.fetchval("SELECT 1")
        return ReadinessResponse(ready=True)
    except Exception as e:
        return JSONResponse(status_code=503, content={"ready": False, "error": str(e)})


@router.get(
    "/health/live",
    response_model=LivenessResponse,
    summary="Liveness probe",
    tags=["Health"],
)
async def liveness_check() -> LivenessResponse:
    """Kubernetes-style liveness probe."""
    return LivenessResponse(alive=True)
