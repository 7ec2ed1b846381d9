"""
Schemas Package

Pydantic models for API and WebSocket events.
"""

from consultation.schemas.websocket_events import (
    ClientFrame,
    ConversationEvent,
    SendMessageEvent,
    ReadEvent,
    CallEvent,
    SignalEvent,
)
from consultation.schemas.conversation import (
    ApiResponse,
    CreateConversationRequest,
    RejectConversationRequest,
    RatingRequest,
    EndConversationRequest,
    SendMessageRequest,
    MarkReadRequest,
    PartnerStatusRequest,
)

__all__ = [
    "ClientFrame",
    "ConversationEvent",
    "SendMessageEvent",
    "ReadEvent",
    "CallEvent",
    "SignalEvent",
    "ApiResponse",
    "CreateConversationRequest",
    "RejectConversationRequest",
    "RatingRequest",
    "EndConversationRequest",
    "SendMessageRequest",
    "MarkReadRequest",
    "PartnerStatusRequest",
]
