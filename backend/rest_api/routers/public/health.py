"""
Health check endpoints for the REST API.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text

from rest_api.models import OutboxEvent, OutboxStatus
from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from shared.infrastructure.events import get_redis_pool
from shared.utils.health import HealthStatus, aggregate_health_checks, health_check_with_timeout

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health_check():
    """Service is up. Does not touch dependencies."""
    return {
        "status": "healthy",
        "service": "rest-api",
        "environment": settings.environment,
    }


@health_check_with_timeout(timeout=3.0, component="database")
async def check_database_health() -> dict:
    with SessionLocal() as db:
        db.execute(text("SELECT 1"))
    return {"type": settings.database_url.split(":", 1)[0]}


@health_check_with_timeout(timeout=3.0, component="redis")
async def check_redis_health() -> dict:
    pool = await get_redis_pool()
    await pool.ping()
    return {"max_connections": settings.redis_pool_max_connections}


@health_check_with_timeout(timeout=3.0, component="outbox")
async def check_outbox_health() -> dict:
    """Backlog of change notifications not yet published."""
    with SessionLocal() as db:
        rows = db.execute(
            select(OutboxEvent.status, func.count(OutboxEvent.id))
            .where(OutboxEvent.status.in_([OutboxStatus.PENDING, OutboxStatus.FAILED]))
            .group_by(OutboxEvent.status)
        ).all()
    counts = dict(rows)
    return {
        "pending": counts.get(OutboxStatus.PENDING, 0),
        "failed": counts.get(OutboxStatus.FAILED, 0),
    }


@router.get("/health/detailed")
async def detailed_health_check():
    """
    Checks the database, Redis and the outbox backlog.
    Returns 503 when any of them is down.
    """
    health_results = await aggregate_health_checks([
        check_database_health(),
        check_redis_health(),
        check_outbox_health(),
    ])

    checks = {
        "service": "rest-api",
        "environment": settings.environment,
        "status": health_results["status"],
        "dependencies": health_results["components"],
    }

    if health_results["status"] != HealthStatus.HEALTHY.value:
        return JSONResponse(content=checks, status_code=503)

    return checks
