"""
WebSocket Event Schemas

Pydantic models for type-safe WebSocket event handling.

Frames:
    client -> server  {"type": <event>, "request_id": <optional>, "data": {...}}
    server -> client  {"type": <event>, "data": {...}}
    acknowledgment    {"type": "ack", "request_id", "event", "success", ...}
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Envelope
# =============================================================================

class ClientFrame(BaseModel):
    """Envelope of every client -> server frame."""
    type: str
    request_id: Optional[Union[str, int]] = None
    data: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Event Payloads
# =============================================================================

class ConversationEvent(BaseModel):
    """Base payload: every conversation-scoped event names its conversation."""
    conversation_id: str


class SendMessageEvent(ConversationEvent):
    content: Optional[str] = None
    message_type: str = "text"
    media_url: Optional[str] = None


class ReadEvent(ConversationEvent):
    message_ids: Optional[List[int]] = None


class CallEvent(ConversationEvent):
    """Call negotiation payload; extra keys are relayed to the peer verbatim."""
    model_config = ConfigDict(extra="allow")

    call_type: Optional[str] = None


class SignalEvent(ConversationEvent):
    """Opaque negotiation payload (SDP offer/answer, ICE candidate, ...)."""
    model_config = ConfigDict(extra="allow")

    signal: Any = None
