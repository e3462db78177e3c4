"""
Real-time events over Redis pub/sub.

- channels.py: channel naming for the four channel kinds
- event_schema.py: the ``{event, channel, data, ts}`` envelope
- redis_pool.py: shared async Redis client
- broadcaster.py: ``Broadcaster`` interface with Redis and in-memory transports
"""

from .channels import (
    channel_restaurant,
    channel_kitchen,
    channel_captain,
    channel_order,
    staff_channels,
    is_valid_channel,
)
from .event_schema import EventEnvelope
from .redis_pool import get_redis_pool, close_redis_pool, check_redis_health
from .broadcaster import Broadcaster, RedisBroadcaster, InMemoryBroadcaster, Publication

__all__ = [
    # Channels
    "channel_restaurant",
    "channel_kitchen",
    "channel_captain",
    "channel_order",
    "staff_channels",
    "is_valid_channel",
    # Envelope
    "EventEnvelope",
    # Redis
    "get_redis_pool",
    "close_redis_pool",
    "check_redis_health",
    # Transports
    "Broadcaster",
    "RedisBroadcaster",
    "InMemoryBroadcaster",
    "Publication",
]
