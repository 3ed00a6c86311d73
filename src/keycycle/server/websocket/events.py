"""
WebSocket event broadcasting for live rotation updates.

Forwards router events (exclusions, recoveries, resets, retries,
exhaustion) to connected clients.
"""

import asyncio
import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from fastapi import WebSocket

from keycycle.router.events import RouterEvent

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Connection-level WebSocket event types."""

    CONNECTED = "connected"
    PING = "ping"
    PONG = "pong"


class ConnectionManager:
    """
    Manages WebSocket connections and event broadcasting.
    """

    def __init__(self) -> None:
        """Initialize connection manager."""
        self.active_connections: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    async def connect(self, websocket: WebSocket) -> None:
        """
        Accept WebSocket connection.

        Args:
            websocket: WebSocket connection
        """
        await websocket.accept()

        async with self._lock:
            self.active_connections.add(websocket)

        await self._send(
            websocket,
            {
                "type": EventType.CONNECTED.value,
                "data": {},
                "timestamp": datetime.now(UTC).isoformat(),
            },
        )
        logger.debug("WebSocket connected")

    async def disconnect(self, websocket: WebSocket) -> None:
        """
        Forget a WebSocket connection.

        Args:
            websocket: WebSocket connection to remove
        """
        async with self._lock:
            self.active_connections.discard(websocket)

        logger.debug("WebSocket disconnected")

    async def broadcast(self, message: dict[str, Any]) -> None:
        """
        Send a message to every connection.

        Args:
            message: JSON-serializable message
        """
        async with self._lock:
            connections = set(self.active_connections)

        if not connections:
            return

        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.debug(f"Failed to send to WebSocket: {e}")
                disconnected.append(websocket)

        for websocket in disconnected:
            await self.disconnect(websocket)

    def forward_router_event(self, event: RouterEvent) -> None:
        """
        Router event listener scheduling a broadcast on the running loop.

        Events raised outside an event loop are dropped.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.broadcast(event.to_dict()))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, websocket: WebSocket, message: dict[str, Any]) -> None:
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.debug(f"Failed to send event: {e}")

    @property
    def connection_count(self) -> int:
        return len(self.active_connections)

    @property
    def pending_broadcasts(self) -> int:
        return len(self._pending)


# Global connection manager
_manager: ConnectionManager | None = None


def get_connection_manager() -> ConnectionManager:
    """Get the global connection manager."""
    global _manager
    if _manager is None:
        _manager = ConnectionManager()
    return _manager
