"""
Connection Registry

Core WebSocket connection management:
- One live connection per identity (last connection wins)
- Per-conversation broadcast rooms
- Targeted and global event delivery
"""
import asyncio
from typing import Dict, List, Optional, Any
import logging

from .models import ClientConnection

logger = logging.getLogger(__name__)


def conversation_room(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


class ConnectionRegistry:
    """
    Registry of live connections keyed by identity, plus broadcast rooms.

    State lives only for the lifetime of the gateway process; after a restart
    every client reconnects and the registry is rebuilt from scratch.
    """

    def __init__(self):
        # identity_id -> ClientConnection
        self._connections: Dict[str, ClientConnection] = {}
        # room -> {identity_id: ClientConnection}
        self._rooms: Dict[str, Dict[str, ClientConnection]] = {}
        self._lock = asyncio.Lock()

    # === Core Connection Methods ===

    async def register(self, conn: ClientConnection) -> Optional[ClientConnection]:
        """
        Register a connection for its identity.

        Returns the connection it replaced, if any. The replaced connection
        loses its room memberships and stops receiving targeted events.
        """
        async with self._lock:
            previous = self._connections.get(conn.identity_id)
            if previous is not None and previous is not conn:
                self._drop_rooms(previous)
            self._connections[conn.identity_id] = conn

        if previous is not None and previous is not conn:
            logger.info(f"[Registry] {conn.role} {conn.identity_id} reconnected, replacing {previous.connection_id}")
        else:
            logger.info(f"[Registry] {conn.role} {conn.identity_id} registered")
        return previous

    async def unregister(self, conn: ClientConnection) -> bool:
        """
        Remove a connection. Returns False if the identity has since been
        taken over by a newer connection (which is left untouched).
        """
        async with self._lock:
            self._drop_rooms(conn)
            current = self._connections.get(conn.identity_id)
            if current is not conn:
                return False
            del self._connections[conn.identity_id]

        logger.info(f"[Registry] {conn.role} {conn.identity_id} unregistered")
        return True

    def lookup(self, identity_id: str) -> Optional[ClientConnection]:
        return self._connections.get(identity_id)

    def is_connected(self, identity_id: str) -> bool:
        return identity_id in self._connections

    # === Rooms ===

    async def join_room(self, room: str, conn: ClientConnection) -> None:
        async with self._lock:
            self._rooms.setdefault(room, {})[conn.identity_id] = conn
            conn.rooms.add(room)

    async def leave_room(self, room: str, conn: ClientConnection) -> None:
        async with self._lock:
            members = self._rooms.get(room)
            if members and members.get(conn.identity_id) is conn:
                del members[conn.identity_id]
                if not members:
                    del self._rooms[room]
            conn.rooms.discard(room)

    def _drop_rooms(self, conn: ClientConnection) -> None:
        for room in list(conn.rooms):
            members = self._rooms.get(room)
            if members and members.get(conn.identity_id) is conn:
                del members[conn.identity_id]
                if not members:
                    del self._rooms[room]
        conn.rooms.clear()

    def room_members(self, room: str) -> List[str]:
        return list(self._rooms.get(room, {}).keys())

    # === Delivery ===

    async def emit_to_room(
        self,
        room: str,
        event: str,
        data: Dict[str, Any],
        exclude_identity: Optional[str] = None
    ) -> int:
        """Send an event to every member of a room."""
        sent_count = 0
        for identity_id, conn in list(self._rooms.get(room, {}).items()):
            if exclude_identity and identity_id == exclude_identity:
                continue
            if await conn.emit(event, data):
                sent_count += 1
        return sent_count

    async def emit_to_identity(self, identity_id: str, event: str, data: Dict[str, Any]) -> bool:
        """Send an event to one identity's live connection, if any."""
        conn = self._connections.get(identity_id)
        if not conn:
            return False
        return await conn.emit(event, data)

    async def broadcast_all(self, event: str, data: Dict[str, Any]) -> int:
        """Send an event to every connected client."""
        sent_count = 0
        for conn in list(self._connections.values()):
            if await conn.emit(event, data):
                sent_count += 1
        return sent_count

    # === Query Methods ===

    def get_total_connections(self) -> int:
        return len(self._connections)

    def get_room_count(self) -> int:
        return len(self._rooms)
