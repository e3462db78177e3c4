"""
WebSocket Gateway main application.

Forwards order events published on Redis to subscribed sockets. One socket
follows one channel:

- ``/ws/order_{orderId}``: customer tracking page, no authentication
- ``/ws/restaurant_{id}``, ``/ws/kitchen_{id}``, ``/ws/captain_{id}``:
  staff views, ``?token=<jwt>`` for a staff member of that restaurant

No replay and no acknowledgement: clients that miss events poll the
REST API.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.config.constants import ChannelPrefix, MANAGEMENT_ROLES, Roles
from shared.config.logging import setup_logging, ws_gateway_logger as logger
from shared.config.settings import settings
from shared.infrastructure.events import check_redis_health, close_redis_pool
from shared.infrastructure.events.channels import CHANNEL_PATTERN
from shared.security.auth import verify_jwt
from shared.utils.exceptions import AppException
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.redis_subscriber import run_subscriber

HEARTBEAT_CLEANUP_INTERVAL = 30.0

# Close codes sent to clients
WS_CLOSE_POLICY_VIOLATION = 1008
WS_CLOSE_AUTH_FAILED = 4001
WS_CLOSE_FORBIDDEN = 4003

# Roles allowed on each staff channel kind
CHANNEL_ROLES: dict[str, frozenset[str]] = {
    ChannelPrefix.RESTAURANT: MANAGEMENT_ROLES,
    ChannelPrefix.KITCHEN: MANAGEMENT_ROLES | {Roles.KITCHEN},
    ChannelPrefix.CAPTAIN: MANAGEMENT_ROLES | {Roles.CAPTAIN},
}

manager = ConnectionManager()


# =============================================================================
# Lifespan and background tasks
# =============================================================================


async def forward_event(envelope: dict) -> None:
    sent = await manager.send_to_channel(envelope["channel"], envelope)
    logger.debug("Event forwarded", channel=envelope["channel"], event=envelope["event"], recipients=sent)


async def start_heartbeat_cleanup() -> None:
    while True:
        try:
            await asyncio.sleep(HEARTBEAT_CLEANUP_INTERVAL)
            cleaned = await manager.cleanup_stale_connections()
            if cleaned:
                logger.info("Cleaned up stale connections", count=cleaned)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in heartbeat cleanup", error=str(e))


async def start_redis_subscriber() -> None:
    try:
        await run_subscriber(forward_event)
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("Redis subscriber stopped", error=str(e), exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Starting WebSocket Gateway", port=settings.ws_gateway_port, env=settings.environment)

    subscriber_task = asyncio.create_task(start_redis_subscriber(), name="redis_subscriber")
    cleanup_task = asyncio.create_task(start_heartbeat_cleanup(), name="heartbeat_cleanup")

    yield

    logger.info("Shutting down WebSocket Gateway")
    for task in (subscriber_task, cleanup_task):
        task.cancel()
    await asyncio.gather(subscriber_task, cleanup_task, return_exceptions=True)

    await manager.shutdown()
    await close_redis_pool()
    logger.info("Redis connection pool closed")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="QuickServe WebSocket Gateway",
    description="Real-time order events for customers and restaurant staff",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.allowed_origins.split(",") if o.strip()] or ["*"],
    allow_credentials=bool(settings.allowed_origins),
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.get("/ws/health")
def health_check():
    return {
        "status": "healthy",
        "service": "ws-gateway",
        "version": app.version,
        "environment": settings.environment,
        **manager.get_stats(),
    }


@app.get("/ws/health/detailed")
async def detailed_health_check():
    """Connection stats plus Redis reachability; 503 when Redis is down."""
    redis_health = await check_redis_health()
    checks = {
        "service": "ws-gateway",
        "environment": settings.environment,
        "connections": manager.get_stats(),
        "dependencies": {"redis": redis_health},
        "status": "healthy" if redis_health["status"] == "healthy" else "degraded",
    }
    if checks["status"] != "healthy":
        return JSONResponse(content=checks, status_code=503)
    return checks


# =============================================================================
# WebSocket Endpoint
# =============================================================================


def authorize_channel(channel: str, token: str | None) -> int | None:
    """
    Return ``None`` if the socket may follow ``channel``, otherwise the
    close code to reject it with.
    """
    match = CHANNEL_PATTERN.match(channel)
    if match is None:
        return WS_CLOSE_POLICY_VIOLATION

    prefix = match.group("prefix")
    if prefix == ChannelPrefix.ORDER:
        return None

    if not token:
        return WS_CLOSE_AUTH_FAILED
    try:
        ctx = verify_jwt(token)
    except AppException as e:
        return WS_CLOSE_FORBIDDEN if e.status_code == 403 else WS_CLOSE_AUTH_FAILED

    if ctx["restaurant_id"] != int(match.group("id")) or ctx.get("role") not in CHANNEL_ROLES[prefix]:
        return WS_CLOSE_FORBIDDEN
    return None


@app.websocket("/ws/{channel}")
async def channel_websocket(
    websocket: WebSocket,
    channel: str,
    token: str | None = Query(default=None, description="Staff JWT (staff channels only)"),
):
    reject_code = authorize_channel(channel, token)
    if reject_code is not None:
        logger.warning("WebSocket subscription rejected", channel=channel, code=reject_code)
        await websocket.close(code=reject_code)
        return

    try:
        await manager.connect(websocket, channel)
    except ConnectionError as e:
        logger.warning("WebSocket connect failed", channel=channel, error=str(e))
        return

    try:
        while True:
            message = await websocket.receive_text()
            manager.record_heartbeat(websocket)
            if message == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ws_gateway.main:app",
        host="0.0.0.0",
        port=settings.ws_gateway_port,
        reload=settings.debug,
    )
