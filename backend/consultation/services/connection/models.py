"""
Connection Models

Data classes representing real-time client connections.
"""
from typing import Dict, Any, Set
import logging
import uuid

from fastapi import WebSocket

from consultation.models.database import utcnow

logger = logging.getLogger(__name__)


class ClientConnection:
    """Represents a single authenticated WebSocket connection."""

    def __init__(self, websocket: WebSocket, identity_id: str, role: str):
        self.websocket = websocket
        self.identity_id = identity_id
        self.role = role
        self.connection_id = str(uuid.uuid4())
        self.connected_at = utcnow()
        self.rooms: Set[str] = set()

    async def send_json(self, data: Dict[str, Any]) -> bool:
        """Send JSON frame to this connection."""
        try:
            await self.websocket.send_json(data)
            return True
        except Exception as e:
            logger.error(f"Error sending JSON to {self.identity_id}: {e}")
            return False

    async def emit(self, event: str, data: Dict[str, Any]) -> bool:
        """Send a server event frame."""
        return await self.send_json({"type": event, "data": data})

    def __repr__(self):
        return f"<ClientConnection {self.role}:{self.identity_id} {self.connection_id[:8]}>"
