"""
Order event fan-out.

Every order change is published to the restaurant's three staff channels
and to the customer's order channel:

    restaurant_{id}, kitchen_{id}, captain_{id}  → "new-order" | "order-updated"
    order_{order_id}                             → always "order-updated"

Delivery is fire-and-forget through the ``Broadcaster`` interface; clients
poll as a fallback, so nothing here waits for or checks delivery.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any

from shared.config.constants import OrderEvents
from shared.config.logging import get_logger
from shared.infrastructure.events import (
    Broadcaster,
    InMemoryBroadcaster,
    RedisBroadcaster,
    channel_captain,
    channel_kitchen,
    channel_order,
    channel_restaurant,
)
from shared.utils.schemas import NotificationOutput, OrderOutput
from rest_api.models import Notification, Order
from rest_api.repositories import validate_persistence_backend

logger = get_logger(__name__)


def order_snapshot(order: Order) -> dict[str, Any]:
    """JSON-ready order payload, same shape as the REST responses."""
    return OrderOutput.model_validate(order).model_dump(mode="json", by_alias=True)


class OrderEventBroadcaster:
    """Publishes order and notification events for one restaurant."""

    def __init__(self, broadcaster: Broadcaster):
        self._broadcaster = broadcaster

    async def order_created(self, order: Order) -> None:
        await self._fan_out(order, OrderEvents.NEW_ORDER)

    async def order_updated(self, order: Order) -> None:
        await self._fan_out(order, OrderEvents.ORDER_UPDATED)

    async def notification_created(self, notification: Notification) -> None:
        payload = NotificationOutput.model_validate(notification).model_dump(mode="json", by_alias=True)
        await self._broadcaster.publish(
            channel_restaurant(notification.restaurant_id),
            OrderEvents.NOTIFICATION_NEW,
            payload,
        )

    async def _fan_out(self, order: Order, staff_event: str) -> None:
        payload = order_snapshot(order)
        restaurant_id = order.restaurant_id
        await asyncio.gather(
            self._broadcaster.publish(channel_restaurant(restaurant_id), staff_event, payload),
            self._broadcaster.publish(channel_kitchen(restaurant_id), staff_event, payload),
            self._broadcaster.publish(channel_captain(restaurant_id), staff_event, payload),
            # The customer channel only ever sees updates
            self._broadcaster.publish(channel_order(order.id), OrderEvents.ORDER_UPDATED, payload),
        )
        logger.debug(
            "Order event fanned out",
            order_id=order.id,
            restaurant_id=restaurant_id,
            event_type=staff_event,
        )


# =============================================================================
# Transport singleton
# =============================================================================

_broadcaster: Broadcaster | None = None
_broadcaster_lock = threading.Lock()


def get_broadcaster() -> Broadcaster:
    """
    Process-wide transport, created on first use.

    Redis for the SQL backend; an in-memory recorder for the memory backend.
    """
    global _broadcaster
    if _broadcaster is None:
        with _broadcaster_lock:
            if _broadcaster is None:
                if validate_persistence_backend() == "memory":
                    _broadcaster = InMemoryBroadcaster()
                else:
                    _broadcaster = RedisBroadcaster()
    return _broadcaster


def set_broadcaster(broadcaster: Broadcaster | None) -> None:
    """Replace the transport (tests); None resets to lazy creation."""
    global _broadcaster
    with _broadcaster_lock:
        _broadcaster = broadcaster


def get_order_events() -> OrderEventBroadcaster:
    """FastAPI dependency."""
    return OrderEventBroadcaster(get_broadcaster())
