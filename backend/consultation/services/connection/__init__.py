"""
Connection Management Module

Exposes the ConnectionRegistry and the process-wide default instance.
"""
from .models import ClientConnection
from .manager import ConnectionRegistry, conversation_room
from .notifications import broadcast_partner_status, notify_conversation_event

# Process-wide registry; rebuilt empty on every start
connection_registry = ConnectionRegistry()


__all__ = [
    "ClientConnection",
    "ConnectionRegistry",
    "conversation_room",
    "connection_registry",
    "broadcast_partner_status",
    "notify_conversation_event",
]
