"""WebSocket connection management."""

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages active WebSocket connections and broadcasts change messages."""

    def __init__(self) -> None:
        """Initialize connection manager with empty connection list."""
        self.active_connections: list[WebSocket] = []
        self._pending: set[asyncio.Task[None]] = set()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"[ConnectionManager] Client connected (total: {len(self.active_connections)})")

    def disconnect(self, websocket: WebSocket) -> None:
        """Remove a WebSocket connection from active list."""
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info(
                f"[ConnectionManager] Client disconnected (total: {len(self.active_connections)})"
            )

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Broadcast message to all connected clients.

        Args:
            message: Dictionary to send as JSON to all clients
        """
        if not self.active_connections:
            logger.debug("[ConnectionManager] No active connections to broadcast to")
            return

        message_json = json.dumps(message)
        logger.debug(
            f"[ConnectionManager] Broadcasting to {len(self.active_connections)} clients: "
            f"{message_json}"
        )

        # Send to all connections, remove dead ones
        dead_connections = []
        for connection in list(self.active_connections):
            try:
                await connection.send_text(message_json)
            except Exception as e:
                logger.warning(f"[ConnectionManager] Failed to send to client: {e}")
                dead_connections.append(connection)

        for connection in dead_connections:
            self.disconnect(connection)

    def publish(self, event_type: str, task_id: str) -> None:
        """Schedule a change broadcast from synchronous code on the event loop.

        Used as the listener of task sessions. Does nothing without connections.
        """
        if not self.active_connections:
            return
        task = asyncio.get_running_loop().create_task(
            self.broadcast({"type": event_type, "task_id": task_id})
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
