"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter
from sqlalchemy import text

from app.core.config import settings
from app.core.deps import DBSession, RedisDep
from app.schemas.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DBSession, redis: RedisDep) -> dict[str, Any]:
    """
    Health check endpoint.

    Checks database and Redis connectivity and returns service status.
    Payment configuration is reported but does not make the service unhealthy.
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "version": settings.version,
        "environment": settings.environment,
        "checks": {},
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"unhealthy: {e!s}"

    try:
        await redis.ping()
        health_status["checks"]["redis"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["redis"] = f"unhealthy: {e!s}"

    health_status["checks"]["payments"] = (
        "configured" if settings.razorpay_key_secret else "not configured"
    )

    return health_status


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness probe for Kubernetes/container orchestration.

    Simple check that the service is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(db: DBSession) -> dict[str, str]:
    """Readiness probe: the database must answer before traffic is routed here."""
    await db.execute(text("SELECT 1"))
    return {"status": "ready"}
