"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text

from backoffice_sync import __version__
from backoffice_sync.api.deps import SessionDep, SettingsDep, get_cache
from backoffice_sync.infrastructure.redis import CacheService

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information.
    This endpoint is used by load balancers and orchestrators
    to determine if the service is running.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "database": "configured",
            "redis": "configured",
            "backoffice": "configured" if settings.backoffice_configured else "missing",
        },
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(
    settings: SettingsDep,
    session: SessionDep,
    cache: Annotated[CacheService, Depends(get_cache)],
) -> ReadinessResponse:
    """
    Readiness check endpoint.

    The service is ready when the database answers, Redis answers (pending
    registrations live there) and the back office is configured.
    """
    checks: dict[str, bool] = {}

    try:
        await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.warning("Database readiness check failed", error=str(e))
        checks["database"] = False

    checks["redis"] = await cache.health_check()
    checks["backoffice"] = settings.backoffice_configured

    return ReadinessResponse(
        ready=all(checks.values()),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.

    Simple endpoint that returns 200 if the service is running.
    """
    return {"status": "alive"}
