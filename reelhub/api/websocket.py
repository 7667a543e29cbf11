"""WebSocket connection manager for real-time updates."""

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections for broadcasting updates."""

    def __init__(self) -> None:
        self.active_connections: list[WebSocket] = []
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self.active_connections.append(websocket)
        logger.info(f"Client connected. Total connections: {len(self.active_connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a WebSocket connection."""
        async with self._lock:
            if websocket in self.active_connections:
                self.active_connections.remove(websocket)
        logger.info(f"Client disconnected. Total connections: {len(self.active_connections)}")

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Broadcast a message to all connected clients."""
        if not self.active_connections:
            return

        json_message = json.dumps(message)
        disconnected = []

        async with self._lock:
            for connection in self.active_connections:
                try:
                    await connection.send_text(json_message)
                except Exception as e:
                    logger.warning(f"Failed to send message: {e}")
                    disconnected.append(connection)

            for conn in disconnected:
                self.active_connections.remove(conn)

    async def broadcast_data_update(
        self,
        username: str,
        collection: str,
        key: str | None = None,
        action: str = "updated",
    ) -> None:
        """Tell clients that one of a user's stored collections changed.

        ``collection`` is ``playrecords``, ``favorites``, ``skipconfigs``,
        ``searchhistory`` or ``settings``; ``action`` is ``updated`` or ``deleted``.
        """
        data: dict = {
            "type": "data_update",
            "user": username,
            "collection": collection,
            "action": action,
        }
        if key is not None:
            data["key"] = key
        await self.broadcast(data)

    async def broadcast_session_update(
        self,
        session_id: str,
        username: str,
        state: str,
        key: str | None = None,
        episode: int | None = None,
        total_episodes: int | None = None,
        error: str | None = None,
    ) -> None:
        """Broadcast a playback session state change.

        Optional fields are only included when set, so clients merging
        ``{...session, ...message}`` keep their existing values.
        """
        data: dict = {
            "type": "session_update",
            "session_id": session_id,
            "user": username,
            "state": state,
        }
        if key is not None:
            data["key"] = key
        if episode is not None:
            data["episode"] = episode
        if total_episodes is not None:
            data["total_episodes"] = total_episodes
        if error is not None:
            data["error_message"] = error
        await self.broadcast(data)


# Singleton instance
manager = ConnectionManager()
