"""
WebSocket route handlers.

Provides the live rotation event feed.
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from keycycle.server.websocket.events import EventType, get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/events")
async def websocket_events(websocket: WebSocket) -> None:
    """
    WebSocket endpoint for live rotation events.

    Events sent:
        - connected: Initial connection confirmation
        - backend.excluded: A backend was rate limited and left rotation
        - backends.recovered: Cooldown elapsed, excluded backends returned
        - exclusions.reset: Operator readmitted every backend
        - retry.scheduled: A request is waiting before its next attempt
        - attempts.exhausted: A request ran out of attempts
        - backend.none: A request found no eligible backend

    Messages received:
        - ping: Respond with pong
    """
    manager = get_connection_manager()
    await manager.connect(websocket)

    try:
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_json(), timeout=30)

                if data.get("type") == EventType.PING.value:
                    await websocket.send_json({"type": EventType.PONG.value, "data": {}})

            except asyncio.TimeoutError:
                # Keep the connection alive
                try:
                    await websocket.send_json({"type": EventType.PING.value, "data": {}})
                except Exception:
                    break

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.debug(f"WebSocket error: {e}")
    finally:
        await manager.disconnect(websocket)


@router.get("/connections")
async def get_connections() -> dict[str, Any]:
    """
    Get WebSocket connection info.
    """
    manager = get_connection_manager()
    return {"total_connections": manager.connection_count}
