"""
Process-wide async Redis client.

The broadcaster publishes order events through it, the WebSocket gateway
subscribes through it and the detailed health check pings it. The client
is created on first use so importing this module never touches the
network.
"""

from __future__ import annotations

import asyncio

import redis.asyncio as redis

from shared.config.settings import settings, REDIS_URL
from shared.config.logging import get_logger

logger = get_logger(__name__)

_client: redis.Redis | None = None
# Bound to the running loop on first use; reset on close so tests can run
# successive event loops
_client_lock: asyncio.Lock | None = None


def _build_client() -> redis.Redis:
    timeout = settings.redis_socket_timeout
    return redis.from_url(
        REDIS_URL,
        decode_responses=True,
        max_connections=settings.redis_pool_max_connections,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        health_check_interval=30,
    )


async def get_redis_pool() -> redis.Redis:
    global _client, _client_lock
    if _client is None:
        if _client_lock is None:
            _client_lock = asyncio.Lock()
        async with _client_lock:
            if _client is None:
                _client = _build_client()
                logger.info("Redis client created", max_connections=settings.redis_pool_max_connections)
    return _client


async def check_redis_health(timeout: float = 3.0) -> dict[str, str]:
    try:
        client = await get_redis_pool()
        await asyncio.wait_for(client.ping(), timeout=timeout)
    except Exception as e:
        logger.warning("Redis ping failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


async def close_redis_pool() -> None:
    global _client, _client_lock
    client, _client, _client_lock = _client, None, None
    if client is not None:
        await client.aclose()
        logger.info("Redis client closed")
