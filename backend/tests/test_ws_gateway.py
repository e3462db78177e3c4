"""
Tests for the WebSocket gateway: channel authorization, envelope checks
and the connection manager.
"""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect, WebSocketState

from conftest import staff_token
from ws_gateway.connection_manager import ChannelFullError, ConnectionManager
from ws_gateway.main import (
    WS_CLOSE_AUTH_FAILED,
    WS_CLOSE_FORBIDDEN,
    WS_CLOSE_POLICY_VIOLATION,
    app,
    authorize_channel,
)
from ws_gateway.redis_subscriber import handle_message, reconnect_delay, validate_envelope


class FakeSocket:
    def __init__(self, fail_on_send: bool = False):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []
        self.closed_with = None
        self._fail_on_send = fail_on_send

    async def accept(self):
        pass

    async def send_json(self, payload):
        if self._fail_on_send:
            raise RuntimeError("connection reset")
        self.sent.append(payload)

    async def close(self, code=1000, reason=None):
        self.closed_with = code


class TestAuthorizeChannel:
    def test_order_channels_are_public(self):
        assert authorize_channel("order_42", None) is None

    def test_unknown_channel(self):
        assert authorize_channel("waiter_1", None) == WS_CLOSE_POLICY_VIOLATION

    def test_staff_channel_needs_token(self):
        assert authorize_channel("kitchen_1", None) == WS_CLOSE_AUTH_FAILED
        assert authorize_channel("kitchen_1", "garbage") == WS_CLOSE_AUTH_FAILED

    def test_kitchen_staff_on_kitchen_channel(self):
        assert authorize_channel("kitchen_1", staff_token(1, "kitchen")) is None

    def test_kitchen_staff_not_on_restaurant_channel(self):
        assert authorize_channel("restaurant_1", staff_token(1, "kitchen")) == WS_CLOSE_FORBIDDEN

    def test_other_restaurant(self):
        assert authorize_channel("captain_2", staff_token(1, "admin")) == WS_CLOSE_FORBIDDEN

    def test_management_sees_every_staff_channel(self):
        token = staff_token(1, "reception")
        for channel in ("restaurant_1", "kitchen_1", "captain_1"):
            assert authorize_channel(channel, token) is None


class TestEnvelope:
    def test_valid(self):
        assert validate_envelope({"event": "new-order", "channel": "kitchen_1", "data": {}}) == (True, None)

    @pytest.mark.parametrize(
        "envelope",
        [
            "not a dict",
            {"event": "new-order", "channel": "kitchen_1"},
            {"event": "", "channel": "kitchen_1", "data": {}},
            {"event": "new-order", "channel": "lobby", "data": {}},
            {"event": "new-order", "channel": "kitchen_1", "data": []},
        ],
    )
    def test_invalid(self, envelope):
        is_valid, error = validate_envelope(envelope)
        assert not is_valid
        assert error

    @pytest.mark.asyncio
    async def test_handle_message_dispatches_valid_envelopes(self):
        on_message = AsyncMock()
        envelope = {"event": "order-updated", "channel": "order_5", "data": {"id": 5}}

        await handle_message({"channel": "order_5", "data": json.dumps(envelope)}, on_message)
        await handle_message({"channel": "order_5", "data": "{not json"}, on_message)

        on_message.assert_awaited_once_with(envelope)

    def test_reconnect_delay_is_capped(self):
        assert all(0 <= reconnect_delay(attempt, max_delay=5.0) <= 5.0 for attempt in range(20))


class TestConnectionManager:
    @pytest.mark.asyncio
    async def test_send_to_channel(self):
        manager = ConnectionManager()
        kitchen, order = FakeSocket(), FakeSocket()
        await manager.connect(kitchen, "kitchen_1")
        await manager.connect(order, "order_9")

        sent = await manager.send_to_channel("kitchen_1", {"event": "new-order"})

        assert sent == 1
        assert kitchen.sent == [{"event": "new-order"}]
        assert order.sent == []

    @pytest.mark.asyncio
    async def test_failed_socket_is_dropped(self):
        manager = ConnectionManager()
        healthy, broken = FakeSocket(), FakeSocket(fail_on_send=True)
        await manager.connect(healthy, "order_9")
        await manager.connect(broken, "order_9")

        assert await manager.send_to_channel("order_9", {"event": "order-updated"}) == 1
        assert manager.total_connections == 1

    @pytest.mark.asyncio
    async def test_channel_capacity(self, monkeypatch):
        monkeypatch.setattr(ConnectionManager, "MAX_CONNECTIONS_PER_CHANNEL", 1)
        manager = ConnectionManager()
        await manager.connect(FakeSocket(), "order_9")

        extra = FakeSocket()
        with pytest.raises(ChannelFullError):
            await manager.connect(extra, "order_9")
        assert extra.closed_with == 1013

    @pytest.mark.asyncio
    async def test_stale_connections_closed(self, monkeypatch):
        monkeypatch.setattr(ConnectionManager, "HEARTBEAT_TIMEOUT", -1)
        manager = ConnectionManager()
        socket = FakeSocket()
        await manager.connect(socket, "captain_1")

        assert await manager.cleanup_stale_connections() == 1
        assert socket.closed_with == 1001
        assert manager.total_connections == 0

    @pytest.mark.asyncio
    async def test_shutdown_rejects_new_sockets(self):
        manager = ConnectionManager()
        await manager.connect(FakeSocket(), "order_1")

        assert await manager.shutdown() == 1
        with pytest.raises(ConnectionError):
            await manager.connect(FakeSocket(), "order_1")


class TestWebSocketEndpoint:
    def test_customer_ping_pong(self):
        client = TestClient(app)
        with client.websocket_connect("/ws/order_5") as ws:
            ws.send_text("ping")
            assert ws.receive_text() == "pong"

    def test_staff_channel_without_token_is_closed(self):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/kitchen_1") as ws:
                ws.receive_text()
        assert exc.value.code == WS_CLOSE_AUTH_FAILED

    def test_health(self):
        response = TestClient(app).get("/ws/health")
        assert response.json()["service"] == "ws-gateway"
