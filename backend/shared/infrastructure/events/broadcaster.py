"""
Broadcaster transports.

The order engine depends only on ``Broadcaster.publish(channel, event, payload)``.
Delivery is fire-and-forget: a failed publish is logged and dropped, never
raised into the request that triggered it. Clients poll as a fallback.
"""

from __future__ import annotations

import asyncio
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any

from shared.config.settings import settings
from shared.config.logging import get_logger
from .event_schema import EventEnvelope
from .redis_pool import get_redis_pool

logger = get_logger(__name__)


class Broadcaster(ABC):
    """Publish one event to one named channel."""

    @abstractmethod
    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        """Publish ``payload`` as ``event`` on ``channel``. Never raises."""


class RedisBroadcaster(Broadcaster):
    """
    Redis pub/sub transport.

    Retries a couple of times with a short delay, then gives up.
    """

    def __init__(
        self,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ):
        self.max_retries = max(1, max_retries or settings.redis_publish_max_retries)
        self.retry_delay = settings.redis_publish_retry_delay if retry_delay is None else retry_delay

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        try:
            message = EventEnvelope(event=event, channel=channel, data=payload).to_json()
        except (TypeError, ValueError) as e:
            logger.error("Event could not be serialized", channel=channel, event=event, error=str(e))
            return

        for attempt in range(1, self.max_retries + 1):
            try:
                client = await get_redis_pool()
                receivers = await client.publish(channel, message)
                logger.debug("Event published", channel=channel, event=event, receivers=receivers)
                return
            except Exception as e:
                if attempt < self.max_retries:
                    logger.warning(
                        "Redis publish failed, retrying",
                        channel=channel,
                        event=event,
                        attempt=attempt,
                        max_retries=self.max_retries,
                        error=str(e),
                    )
                    await asyncio.sleep(self.retry_delay * attempt)
                else:
                    logger.error(
                        "Redis publish failed after all retries, event dropped",
                        channel=channel,
                        event=event,
                        error=str(e),
                    )


@dataclass(frozen=True)
class Publication:
    """One recorded publish call."""

    channel: str
    event: str
    payload: dict[str, Any]


class InMemoryBroadcaster(Broadcaster):
    """
    Records publications in order; used by tests and the memory backend.

    Only the newest ``max_events`` are kept, so a long-running memory
    backend does not grow without bound.
    """

    DEFAULT_MAX_EVENTS = 1000

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        self._lock = threading.Lock()
        self._published: deque[Publication] = deque(maxlen=max_events)

    @property
    def published(self) -> list[Publication]:
        with self._lock:
            return list(self._published)

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._published.append(Publication(channel=channel, event=event, payload=payload))
        logger.debug("Event recorded", channel=channel, event=event)

    def on_channel(self, channel: str) -> list[Publication]:
        with self._lock:
            return [p for p in self._published if p.channel == channel]

    def clear(self) -> None:
        with self._lock:
            self._published.clear()
