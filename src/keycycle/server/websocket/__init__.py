"""
keycycle.server.websocket - WebSocket handling for live rotation updates.
"""

from keycycle.server.websocket.events import (
    ConnectionManager,
    EventType,
    get_connection_manager,
)
from keycycle.server.websocket.routes import router

__all__ = [
    "ConnectionManager",
    "EventType",
    "get_connection_manager",
    "router",
]
