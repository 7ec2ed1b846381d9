"""
Message Dispatcher

Fans a persisted message out over the real-time gateway. Both transports
call `deliver` after `send_message`, so a REST-sent message reaches the
room exactly like one sent over the socket.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from consultation.models.conversation import Conversation
from consultation.models.database import utcnow
from consultation.models.message import Message
from consultation.services.connection import ConnectionRegistry, conversation_room, connection_registry
from consultation.services.media import display_url, media_signer
from consultation.services.protocols import MediaUrlSignerProtocol
from .parties import ConversationParty

logger = logging.getLogger(__name__)


class MessageDispatcher:
    """Broadcasts new messages and tracks synchronous delivery."""

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        signer: Optional[MediaUrlSignerProtocol] = None
    ):
        self.registry = registry or connection_registry
        self.signer = signer or media_signer

    async def deliver(
        self,
        db: AsyncSession,
        message: Message,
        conversation: Conversation,
        sender: ConversationParty
    ) -> bool:
        """
        Broadcast `message:new` to the conversation room and, if the receiver
        has a live connection, mark the message delivered and tell the sender.

        Returns:
            True if the message was marked delivered
        """
        payload = message.to_dict(display_url(self.signer, message.media_url))
        sent = await self.registry.emit_to_room(
            conversation_room(conversation.id),
            "message:new",
            {"conversation_id": conversation.id, "message": payload},
        )
        logger.debug(f"[Dispatcher] message {message.id} broadcast to {sent} connections")

        receiver_id = message.receiver_id
        if not self.registry.is_connected(receiver_id):
            return False

        now = utcnow()
        message.is_delivered = True
        message.delivered_at = now
        await db.commit()

        await self.registry.emit_to_identity(sender.id, "message:delivered", {
            "conversation_id": conversation.id,
            "message_id": message.id,
            "delivered_at": now.isoformat(),
        })
        await self.registry.emit_to_identity(receiver_id, "notification:new:message", {
            "conversation_id": conversation.id,
            "message_id": message.id,
            "sender": sender.describe(),
            "preview": (conversation.last_message or {}).get("content"),
        })
        return True
