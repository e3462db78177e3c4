"""
Tests for order event fan-out and the Redis broadcaster.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from conftest import make_order
from rest_api.services.events.order_events import order_snapshot
from shared.infrastructure.events import InMemoryBroadcaster, RedisBroadcaster
from shared.infrastructure.events.channels import (
    channel_order,
    channel_restaurant,
    is_valid_channel,
    staff_channels,
)

GET_REDIS_POOL = "shared.infrastructure.events.broadcaster.get_redis_pool"


class TestOrderFanOut:
    @pytest.mark.asyncio
    async def test_new_order_reaches_all_four_channels(self, events, broadcaster, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant)

        await events.order_created(order)

        rid = seed_restaurant.id
        by_channel = {p.channel: p.event for p in broadcaster.published}
        assert by_channel == {
            f"restaurant_{rid}": "new-order",
            f"kitchen_{rid}": "new-order",
            f"captain_{rid}": "new-order",
            f"order_{order.id}": "order-updated",
        }

    @pytest.mark.asyncio
    async def test_update_uses_order_updated_everywhere(self, events, broadcaster, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant)

        await events.order_updated(order)

        assert {p.event for p in broadcaster.published} == {"order-updated"}
        assert len(broadcaster.published) == 4

    @pytest.mark.asyncio
    async def test_payload_is_camel_case_snapshot(self, events, broadcaster, db_session, seed_restaurant):
        order = make_order(db_session, seed_restaurant)

        await events.order_created(order)

        payload = broadcaster.on_channel(channel_order(order.id))[0].payload
        assert payload["orderNumber"] == order.order_number
        assert payload["totalAmount"] == 262.5
        assert payload["paymentStatus"] == "pending"
        assert payload == order_snapshot(order)


class TestChannels:
    def test_staff_channels(self):
        assert staff_channels(3) == ["restaurant_3", "kitchen_3", "captain_3"]

    def test_rejects_non_positive_ids(self):
        with pytest.raises(ValueError):
            channel_restaurant(0)

    @pytest.mark.parametrize(
        "channel,valid",
        [
            ("order_42", True),
            ("kitchen_1", True),
            ("kitchen_0", False),
            ("waiter_1", False),
            ("restaurant_", False),
            ("", False),
        ],
    )
    def test_is_valid_channel(self, channel, valid):
        assert is_valid_channel(channel) is valid


class TestBroadcasters:
    @pytest.mark.asyncio
    async def test_in_memory_recorder(self):
        recorder = InMemoryBroadcaster()
        await recorder.publish("order_1", "order-updated", {"id": 1})

        assert recorder.on_channel("order_1")[0].payload == {"id": 1}
        recorder.clear()
        assert recorder.published == []

    @pytest.mark.asyncio
    async def test_in_memory_recorder_keeps_newest_events(self):
        recorder = InMemoryBroadcaster(max_events=3)
        for order_id in range(1, 6):
            await recorder.publish(f"order_{order_id}", "order-updated", {"id": order_id})

        assert [p.payload["id"] for p in recorder.published] == [3, 4, 5]
        assert recorder.on_channel("order_1") == []

    @pytest.mark.asyncio
    async def test_redis_publish_wraps_envelope(self):
        redis = AsyncMock()
        broadcaster = RedisBroadcaster(max_retries=2, retry_delay=0)

        with patch(GET_REDIS_POOL, new=AsyncMock(return_value=redis)):
            await broadcaster.publish("kitchen_1", "new-order", {"id": 9})

        channel, message = redis.publish.call_args.args
        envelope = json.loads(message)
        assert channel == "kitchen_1"
        assert envelope["event"] == "new-order"
        assert envelope["channel"] == "kitchen_1"
        assert envelope["data"] == {"id": 9}
        assert envelope["ts"]

    @pytest.mark.asyncio
    async def test_redis_failure_is_retried_then_dropped(self):
        redis = AsyncMock()
        redis.publish.side_effect = ConnectionError("redis down")
        broadcaster = RedisBroadcaster(max_retries=2, retry_delay=0)

        with patch(GET_REDIS_POOL, new=AsyncMock(return_value=redis)):
            await broadcaster.publish("kitchen_1", "new-order", {"id": 9})

        assert redis.publish.await_count == 2
