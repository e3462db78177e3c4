"""
Startup and shutdown for the REST API.

Startup refuses to run production with weak secrets, resolves the
persistence backend and creates tables for the SQL backend. Shutdown
releases the Redis pool used for order events.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.config.settings import settings
from shared.config.logging import setup_logging, rest_api_logger as logger
from shared.infrastructure.db import engine
from shared.infrastructure.events import close_redis_pool
from rest_api.models import Base
from rest_api.repositories import validate_persistence_backend


def check_configuration() -> None:
    """Log configuration problems; in production they abort startup."""
    problems = settings.validate_production_secrets()
    for problem in problems:
        logger.error("Configuration error", problem=problem)
    if problems and settings.environment == "production":
        raise RuntimeError("Refusing to start: " + "; ".join(problems))

    if not (settings.cashfree_client_id and settings.cashfree_client_secret):
        logger.warning("Cashfree credentials not set; online payments will fail with 500")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    check_configuration()

    backend = validate_persistence_backend()
    if backend == "sql":
        Base.metadata.create_all(bind=engine)

    logger.info(
        "REST API started",
        port=settings.rest_api_port,
        environment=settings.environment,
        persistence_backend=backend,
        cashfree_environment=settings.cashfree_environment,
    )

    yield

    await close_redis_pool()
    logger.info("REST API stopped")
