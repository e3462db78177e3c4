"""
WebSocket connection manager.

Tracks active sockets per channel (``restaurant_{id}``, ``kitchen_{id}``,
``captain_{id}``, ``order_{id}``). Delivery is best effort: a socket that
fails or stalls on send is dropped, never retried.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from shared.config.logging import ws_gateway_logger as logger
from shared.config.settings import settings


def _is_ws_connected(ws: WebSocket) -> bool:
    """True if the socket can still send and receive."""
    return ws.client_state == WebSocketState.CONNECTED and ws.application_state == WebSocketState.CONNECTED


class ChannelFullError(ConnectionError):
    """Raised when a channel already holds its maximum number of sockets."""


class ConnectionManager:
    """
    Channel → sockets index with heartbeat tracking.

    All index mutations happen under one ``asyncio.Lock``; sends work on a
    snapshot so a slow client never blocks connects or disconnects.
    """

    HEARTBEAT_TIMEOUT = settings.ws_heartbeat_timeout
    MAX_CONNECTIONS_PER_CHANNEL = settings.ws_max_connections_per_channel
    SEND_TIMEOUT = settings.ws_send_timeout

    def __init__(self) -> None:
        self._shutdown = False
        self.by_channel: dict[str, set[WebSocket]] = {}
        self._ws_to_channel: dict[WebSocket, str] = {}
        self._last_heartbeat: dict[WebSocket, float] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, channel: str, timeout: float = 5.0) -> None:
        """
        Accept a socket and register it on ``channel``.

        Raises:
            ConnectionError: During shutdown or if the handshake times out.
            ChannelFullError: If the channel is at capacity (socket is closed).
        """
        if self._shutdown:
            raise ConnectionError("Server is shutting down")

        try:
            await asyncio.wait_for(websocket.accept(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionError("WebSocket accept timed out")

        async with self._lock:
            sockets = self.by_channel.get(channel)
            if sockets is not None and len(sockets) >= self.MAX_CONNECTIONS_PER_CHANNEL:
                full = True
            else:
                full = False
                self.by_channel.setdefault(channel, set()).add(websocket)
                self._ws_to_channel[websocket] = channel
                self._last_heartbeat[websocket] = time.time()

        if full:
            await websocket.close(code=1013, reason="Channel is full")
            raise ChannelFullError(f"Channel {channel} exceeded {self.MAX_CONNECTIONS_PER_CHANNEL} connections")

        logger.debug("WebSocket subscribed", channel=channel)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._last_heartbeat.pop(websocket, None)
            channel = self._ws_to_channel.pop(websocket, None)
            if channel is not None and channel in self.by_channel:
                self.by_channel[channel].discard(websocket)
                if not self.by_channel[channel]:
                    del self.by_channel[channel]

    async def send_to_channel(self, channel: str, payload: dict[str, Any]) -> int:
        """
        Forward one envelope to every socket on ``channel``.

        Returns:
            Number of sockets that received it.
        """
        connections = list(self.by_channel.get(channel, ()))
        if not connections:
            return 0

        results = await asyncio.gather(
            *(self._send(ws, payload) for ws in connections),
        )
        failed = [ws for ws, ok in zip(connections, results) if not ok]
        for ws in failed:
            await self.disconnect(ws)
        return len(connections) - len(failed)

    async def _send(self, ws: WebSocket, payload: dict[str, Any]) -> bool:
        if not _is_ws_connected(ws):
            return False
        try:
            await asyncio.wait_for(ws.send_json(payload), timeout=self.SEND_TIMEOUT)
            return True
        except asyncio.TimeoutError:
            logger.warning("WebSocket send timed out, dropping client", timeout=self.SEND_TIMEOUT)
        except Exception as e:
            logger.warning("WebSocket send failed, dropping client", error=str(e))
        return False

    @property
    def total_connections(self) -> int:
        return len(self._ws_to_channel)

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_connections": self.total_connections,
            "channels_with_connections": len(self.by_channel),
        }

    # =========================================================================
    # Heartbeats
    # =========================================================================

    def record_heartbeat(self, websocket: WebSocket) -> None:
        self._last_heartbeat[websocket] = time.time()

    def get_stale_connections(self) -> list[WebSocket]:
        """Sockets with no client message within ``HEARTBEAT_TIMEOUT`` seconds."""
        now = time.time()
        return [
            ws for ws, last_time in list(self._last_heartbeat.items())
            if now - last_time > self.HEARTBEAT_TIMEOUT
        ]

    async def cleanup_stale_connections(self) -> int:
        stale = self.get_stale_connections()
        for ws in stale:
            try:
                await ws.close(code=1001, reason="Heartbeat timeout")
            except Exception as e:
                logger.warning("Failed to close stale connection", error=str(e))
            await self.disconnect(ws)
        return len(stale)

    async def shutdown(self) -> int:
        """Reject new sockets and close the existing ones."""
        self._shutdown = True
        async with self._lock:
            all_connections = list(self._ws_to_channel)

        closed = 0
        for ws in all_connections:
            try:
                await ws.close(code=1001, reason="Server shutdown")
                closed += 1
            except Exception as e:
                logger.warning("Failed to close connection during shutdown", error=str(e))
            await self.disconnect(ws)

        logger.info("WebSocket shutdown complete", closed=closed)
        return closed

    def is_shutting_down(self) -> bool:
        return self._shutdown
