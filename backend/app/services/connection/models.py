"""
Connection Models

Wrapper around a client WebSocket (ingest or listener).
"""
from datetime import datetime, UTC
from typing import Dict, Any, Optional
import logging
import uuid

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class ClientConnection:
    """Represents a single client WebSocket connected to the relay."""

    def __init__(
        self,
        websocket: WebSocket,
        role: str = "ingest",
        session_id: Optional[str] = None
    ):
        self.websocket = websocket
        self.role = role
        self.session_id = session_id
        self.connection_id = uuid.uuid4().hex[:8]
        self.connected_at = datetime.now(UTC)

    async def accept(self):
        await self.websocket.accept()

    async def receive_text(self) -> str:
        """
        Wait for the next inbound frame as text.

        Binary frames are decoded as UTF-8 so they go through the same
        parser (and fail it with an error event) instead of killing the loop.

        Raises:
            WebSocketDisconnect: the client went away
        """
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000))

        if message.get("text") is not None:
            return message["text"]
        if message.get("bytes") is not None:
            return message["bytes"].decode("utf-8", errors="replace")
        return ""

    async def send_json(self, data: Dict[str, Any]) -> bool:
        """Send JSON message to this connection."""
        try:
            await self.websocket.send_json(data)
            return True
        except Exception as e:
            logger.warning(f"Error sending {data.get('type')} to {self.role} {self.connection_id}: {e}")
            return False
