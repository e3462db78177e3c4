"""
Health check endpoints for the REST API.
Provides basic and detailed health status of the service and its dependencies.
"""

import asyncio

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shared.config.settings import settings
from shared.infrastructure.db import get_db_context
from shared.infrastructure.events import check_redis_health
from shared.utils.health import (
    HealthStatus,
    health_check_with_timeout,
    aggregate_health_checks,
)
from rest_api.services.payments.circuit_breaker import get_all_breaker_stats


router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health_check():
    """
    Basic health check endpoint.
    Returns service status without checking dependencies.
    """
    return {
        "status": "healthy",
        "service": "rest-api",
        "environment": settings.environment,
    }


@health_check_with_timeout(timeout=3.0, component="database")
async def check_database_health() -> dict:
    """Check database connectivity (skipped for the in-memory store)."""
    if settings.persistence_backend != "sql":
        return {"backend": settings.persistence_backend}

    def ping() -> None:
        with get_db_context() as db:
            db.execute(text("SELECT 1"))

    await asyncio.to_thread(ping)
    return {"backend": "sql"}


@health_check_with_timeout(timeout=3.0, component="redis")
async def check_redis_pubsub_health() -> dict:
    result = await check_redis_health()
    if result.get("status") != HealthStatus.HEALTHY.value:
        raise ConnectionError(result.get("error") or "Redis unavailable")
    return {}


@router.get("/health/detailed")
async def detailed_health_check():
    """
    Detailed health check that verifies the database and Redis, and
    reports payment gateway circuit breaker state.

    Returns 503 Service Unavailable if any dependency is down.
    """
    health_results = await aggregate_health_checks([
        check_database_health(),
        check_redis_pubsub_health(),
    ])

    checks = {
        "service": "rest-api",
        "environment": settings.environment,
        "status": health_results["status"],
        "dependencies": health_results["components"],
        "circuit_breakers": get_all_breaker_stats(),
    }

    if checks["status"] != HealthStatus.HEALTHY.value:
        return JSONResponse(content=checks, status_code=503)

    return checks
