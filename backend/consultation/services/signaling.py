"""
Call Signaling Relay

Stateless pass-through of voice/video call negotiation between the two
participants of a conversation. Nothing is persisted: the relay resolves
the other participant, forwards the payload verbatim if they are connected
and otherwise reports `peer_offline` to the caller.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from consultation.models.database import utcnow
from consultation.services.connection import ConnectionRegistry, connection_registry
from consultation.services.conversation.exceptions import ConsultationError, ValidationError
from consultation.services.conversation.parties import ConversationParty
from consultation.services.conversation.validators import get_participant_conversation

logger = logging.getLogger(__name__)


class PeerOfflineError(ConsultationError):
    """Raised when the other participant has no live connection"""
    status_code = 409
    code = "peer_offline"


# inbound event -> event delivered to the peer
RELAYED_EVENTS = {
    "voice:call:initiate": "voice:call:incoming",
    "voice:call:accept": "voice:call:accepted",
    "voice:call:reject": "voice:call:rejected",
    "voice:call:end": "voice:call:ended",
    "voice:signal": "voice:signal",
}


class CallSignalingRelay:
    """Forwards call negotiation events to the conversation peer."""

    def __init__(self, registry: Optional[ConnectionRegistry] = None):
        self.registry = registry or connection_registry

    async def relay(
        self,
        db: AsyncSession,
        party: ConversationParty,
        event: str,
        payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Forward one negotiation event.

        Returns:
            Ack fields: the peer id and the event it received

        Raises:
            ValidationError for an unknown event or missing conversation id
            PeerOfflineError if the peer is not connected
        """
        outbound = RELAYED_EVENTS.get(event)
        if outbound is None:
            raise ValidationError(f"Unsupported call event: {event}")

        conversation = await get_participant_conversation(db, party, payload.get("conversation_id"))
        peer_id = party.peer_id(conversation)

        if not self.registry.is_connected(peer_id):
            logger.info(f"[Signaling] {event} for {conversation.id}: peer {peer_id} offline")
            raise PeerOfflineError("The other participant is offline")

        body = {
            **payload,
            "conversation_id": conversation.id,
            "from": party.describe(),
            "timestamp": utcnow().isoformat(),
        }
        sent = await self.registry.emit_to_identity(peer_id, outbound, body)
        if not sent:
            raise PeerOfflineError("The other participant is offline")

        logger.debug(f"[Signaling] {event} {party.id} -> {peer_id} ({conversation.id})")
        return {"peer_id": peer_id, "relayed_as": outbound}


call_signaling_relay = CallSignalingRelay()
