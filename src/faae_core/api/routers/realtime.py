"""WebSocket endpoint for real-time updates."""
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from faae_core import fanout
from faae_core.config import get_settings

logger = logging.getLogger("faae-core.realtime")

router = APIRouter(tags=["realtime"])

POLICY_VIOLATION = 1008


@router.websocket("/ws")
async def realtime_updates(websocket: WebSocket, userId: Optional[str] = None):
    """
    Subscribe to mutation events.

    The connection joins the ``global`` scope and the caller's own
    ``user:<id>`` scope. Connections without ``userId`` are closed with 1008.
    Events emitted while a client is disconnected are not replayed.
    """
    if not userId:
        await websocket.close(code=POLICY_VIOLATION, reason="User ID required")
        return

    settings = get_settings()
    await websocket.accept()
    fanout.registry.register(websocket, fanout.GLOBAL_SCOPE, fanout.user_scope(userId))
    try:
        await websocket.send_json({
            "type": fanout.EventType.CONNECTED.value,
            "message": "Successfully connected to FAAE Projetos real-time updates",
            "reconnect": {
                "max_attempts": settings.ws_max_reconnect_attempts,
                "delays_seconds": fanout.reconnect_delays(
                    settings.ws_max_reconnect_attempts,
                    settings.ws_reconnect_base_seconds,
                    settings.ws_reconnect_max_seconds,
                ),
            },
        })
        while True:
            # Client messages are ignored; receiving detects the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {userId}")
    finally:
        fanout.registry.unregister(websocket)
