"""
Event Services - order snapshots published to the real-time channels.
"""

from .order_events import (
    OrderEventBroadcaster,
    order_snapshot,
    get_broadcaster,
    set_broadcaster,
    get_order_events,
)

__all__ = [
    "OrderEventBroadcaster",
    "order_snapshot",
    "get_broadcaster",
    "set_broadcaster",
    "get_order_events",
]
