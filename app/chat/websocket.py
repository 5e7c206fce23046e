"""WebSocket management for real-time session updates."""

import logging
from typing import Any, Dict, List, Set

from fastapi import WebSocket


logger = logging.getLogger("app.chat.websocket")


class ChatWebSocketManager:
    """Tracks the WebSocket connections attached to each chat session."""

    def __init__(self):
        # Stores active connections: {session_id: {WebSocket, ...}}
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, session_id: str, user_id: str):
        """Establishes a new WebSocket connection."""
        await websocket.accept()
        self.active_connections.setdefault(session_id, set()).add(websocket)
        logger.info(
            "WebSocket connected: session_id=%s, user_id=%s, connections=%d",
            session_id,
            user_id,
            len(self.active_connections[session_id]),
        )

    async def disconnect(self, websocket: WebSocket):
        """Removes a WebSocket connection."""
        for session_id, connections in list(self.active_connections.items()):
            if websocket in connections:
                connections.remove(websocket)
                if not connections:
                    del self.active_connections[session_id]
                logger.info("WebSocket disconnected: session_id=%s", session_id)
                return

    async def broadcast_to_session(self, session_id: str, message: Dict[str, Any]) -> int:
        """
        Broadcasts a JSON message to every connection of a session.

        Returns:
            Number of connections that received the message
        """
        if session_id not in self.active_connections:
            return 0

        disconnected: List[WebSocket] = []
        sent_count = 0

        for connection in list(self.active_connections[session_id]):
            try:
                await connection.send_json(message)
                sent_count += 1
            except RuntimeError as e:
                logger.warning("Failed to send WebSocket message to session %s: %s", session_id, e)
                disconnected.append(connection)

        for ws in disconnected:
            await self.disconnect(ws)

        return sent_count


# Global WebSocket manager instance
connection_manager = ChatWebSocketManager()
