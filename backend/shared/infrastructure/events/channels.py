"""
Real-time channel naming.

Four role-scoped channel kinds exist: ``restaurant_{id}`` (admin/reception),
``kitchen_{id}``, ``captain_{id}`` and ``order_{orderId}`` (customer).
"""

from __future__ import annotations

import re

from shared.config.constants import ChannelPrefix

CHANNEL_PATTERN = re.compile(
    r"^(?P<prefix>" + "|".join(ChannelPrefix.ALL) + r")_(?P<id>[1-9][0-9]*)$"
)


def _validate_positive_id(id_value: int, name: str) -> None:
    if not isinstance(id_value, int) or isinstance(id_value, bool) or id_value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {id_value!r}")


def channel_restaurant(restaurant_id: int) -> str:
    """Channel for the admin/reception dashboard of a restaurant."""
    _validate_positive_id(restaurant_id, "restaurant_id")
    return f"{ChannelPrefix.RESTAURANT}_{restaurant_id}"


def channel_kitchen(restaurant_id: int) -> str:
    """Channel for the kitchen display of a restaurant."""
    _validate_positive_id(restaurant_id, "restaurant_id")
    return f"{ChannelPrefix.KITCHEN}_{restaurant_id}"


def channel_captain(restaurant_id: int) -> str:
    """Channel for table captains of a restaurant."""
    _validate_positive_id(restaurant_id, "restaurant_id")
    return f"{ChannelPrefix.CAPTAIN}_{restaurant_id}"


def channel_order(order_id: int) -> str:
    """Customer-facing channel for a single order."""
    _validate_positive_id(order_id, "order_id")
    return f"{ChannelPrefix.ORDER}_{order_id}"


def staff_channels(restaurant_id: int) -> list[str]:
    """The three staff channels of a restaurant, in publish order."""
    return [
        channel_restaurant(restaurant_id),
        channel_kitchen(restaurant_id),
        channel_captain(restaurant_id),
    ]


def is_valid_channel(channel: str) -> bool:
    """True if ``channel`` is one of the four known channel kinds."""
    return bool(CHANNEL_PATTERN.match(channel or ""))
