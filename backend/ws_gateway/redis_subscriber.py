"""
Redis pub/sub subscriber for the WebSocket gateway.

Pattern-subscribes to the four channel kinds and hands each decoded
envelope to a callback. Connection errors are retried with capped
exponential backoff; malformed messages are logged and skipped.
"""

from __future__ import annotations

import asyncio
import json
import random
from typing import Any, Awaitable, Callable

import redis.exceptions

from shared.config.constants import ChannelPrefix
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.events import get_redis_pool, is_valid_channel

logger = get_logger(__name__)

SUBSCRIBE_PATTERNS: list[str] = [f"{prefix}_*" for prefix in ChannelPrefix.ALL]
REQUIRED_ENVELOPE_FIELDS = {"event", "channel", "data"}


def validate_envelope(data: Any) -> tuple[bool, str | None]:
    """
    Check an incoming ``{event, channel, data, ts}`` envelope.

    Returns (is_valid, error_message).
    """
    if not isinstance(data, dict):
        return False, "Envelope must be an object"

    missing = REQUIRED_ENVELOPE_FIELDS - set(data)
    if missing:
        return False, f"Missing required fields: {sorted(missing)}"

    if not isinstance(data["event"], str) or not data["event"]:
        return False, "event must be a non-empty string"
    if not is_valid_channel(data["channel"]):
        return False, f"Unknown channel {data['channel']!r}"
    if not isinstance(data["data"], dict):
        return False, "data must be an object"

    return True, None


def reconnect_delay(attempt: int, max_delay: float = settings.redis_max_reconnect_delay) -> float:
    """Exponential backoff with full jitter, capped at ``max_delay``."""
    return random.uniform(0, min(max_delay, 0.5 * (2 ** attempt)))


async def handle_message(msg: dict[str, Any], on_message: Callable[[dict], Awaitable[None]]) -> None:
    """Decode, validate and dispatch one pub/sub message."""
    try:
        data = json.loads(msg["data"])
    except (TypeError, ValueError) as e:
        logger.warning("Failed to parse Redis message", error=str(e), channel=msg.get("channel"))
        return

    is_valid, error = validate_envelope(data)
    if not is_valid:
        logger.warning("Invalid event envelope", error=error, channel=msg.get("channel"))
        return

    try:
        await on_message(data)
    except Exception as e:
        logger.error("Error handling Redis message", error=str(e), exc_info=True)


async def run_subscriber(
    on_message: Callable[[dict], Awaitable[None]],
    patterns: list[str] | None = None,
) -> None:
    """
    Subscribe and dispatch until cancelled.

    Raises:
        RuntimeError: If Redis stays unreachable for
            ``redis_max_reconnect_attempts`` consecutive attempts.
    """
    patterns = patterns or SUBSCRIBE_PATTERNS
    attempts = 0

    while True:
        pubsub = None
        try:
            redis_pool = await get_redis_pool()
            pubsub = redis_pool.pubsub()
            await pubsub.psubscribe(*patterns)
            logger.info("Redis subscriber started", patterns=patterns)

            async for msg in pubsub.listen():
                attempts = 0
                if msg is None or msg.get("type") not in ("message", "pmessage"):
                    continue
                await handle_message(msg, on_message)

        except asyncio.CancelledError:
            logger.info("Redis subscriber cancelled")
            raise
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
            attempts += 1
            if attempts > settings.redis_max_reconnect_attempts:
                logger.error("Redis subscriber giving up", attempts=attempts, error=str(e))
                raise RuntimeError(f"Redis subscriber failed after {attempts} reconnection attempts") from e
            delay = reconnect_delay(attempts - 1)
            logger.warning(
                "Redis connection error, reconnecting",
                error=str(e),
                attempt=attempts,
                delay=round(delay, 2),
            )
            await asyncio.sleep(delay)
        finally:
            if pubsub is not None:
                try:
                    await pubsub.punsubscribe(*patterns)
                    await pubsub.aclose()
                except Exception as e:
                    logger.debug("Error closing pubsub", error=str(e))
