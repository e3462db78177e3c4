"""
Health check helpers.

Every dependency probe is an async function wrapped by
``health_check_with_timeout`` so a hung dependency reports ``unhealthy``
instead of hanging the health endpoint.

Usage:
    @health_check_with_timeout(timeout=3.0, component="database")
    async def check_database():
        ...
        return {"backend": "sql"}

    report = await aggregate_health_checks([check_database(), check_redis()])
"""

from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Coroutine

from shared.config.logging import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class HealthCheckResult:
    """Outcome of one dependency probe."""

    status: HealthStatus
    component: str
    latency_ms: float | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": self.status.value}
        if self.latency_ms is not None:
            result["latency_ms"] = round(self.latency_ms, 2)
        if self.error:
            result["error"] = self.error
        if self.details:
            result["details"] = self.details
        return result


def health_check_with_timeout(timeout: float = 3.0, component: str | None = None):
    """Turn an async probe into one returning ``HealthCheckResult`` within ``timeout``."""

    def decorator(
        func: Callable[..., Coroutine[Any, Any, dict[str, Any] | None]]
    ) -> Callable[..., Coroutine[Any, Any, HealthCheckResult]]:
        name = component or func.__name__.removeprefix("check_").removesuffix("_health")

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> HealthCheckResult:
            started = time.perf_counter()
            try:
                details = await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Health check timeout", component=name, timeout=timeout)
                return HealthCheckResult(
                    status=HealthStatus.UNHEALTHY,
                    component=name,
                    latency_ms=(time.perf_counter() - started) * 1000,
                    error=f"timeout after {timeout}s",
                )
            except Exception as e:
                logger.warning("Health check failed", component=name, error=str(e))
                return HealthCheckResult(
                    status=HealthStatus.UNHEALTHY,
                    component=name,
                    latency_ms=(time.perf_counter() - started) * 1000,
                    error=str(e),
                )
            return HealthCheckResult(
                status=HealthStatus.HEALTHY,
                component=name,
                latency_ms=(time.perf_counter() - started) * 1000,
                details=details if isinstance(details, dict) else {},
            )

        return wrapper

    return decorator


async def aggregate_health_checks(
    checks: list[Coroutine[Any, Any, HealthCheckResult]],
) -> dict[str, Any]:
    """Run probes concurrently; overall status is ``degraded`` if any probe is not healthy."""
    results = await asyncio.gather(*checks)
    components = {result.component: result.to_dict() for result in results}
    all_healthy = all(result.status == HealthStatus.HEALTHY for result in results)
    return {
        "status": HealthStatus.HEALTHY.value if all_healthy else HealthStatus.DEGRADED.value,
        "components": components,
    }
