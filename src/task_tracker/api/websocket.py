"""WebSocket API endpoint for real-time change notifications."""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from task_tracker.factory import get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint broadcasting subtask, status, title and timer changes.

    Args:
        websocket: WebSocket connection
    """
    connection_manager = get_connection_manager()
    await connection_manager.connect(websocket)
    try:
        while True:
            # Keep connection alive, answer client pings
            data = await websocket.receive_text()
            logger.debug(f"[WebSocket] Received from client: {data}")

            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        logger.info("[WebSocket] Client disconnected normally")
        connection_manager.disconnect(websocket)
    except Exception as e:
        logger.error(f"[WebSocket] Error: {e}", exc_info=True)
        connection_manager.disconnect(websocket)
