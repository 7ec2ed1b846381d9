"""
Conversation Messages

The single message path used by both the real-time gateway and the REST
fallback, so either transport leaves the conversation in the same state:
- Send: persist, update preview/unread/message count, accepted -> active
- Mark read: flag inbound messages and zero the caller's counter
- List: paginated newest-first fetch returned in chronological order
- Delete: sender-only soft delete
"""
import logging
import math
from typing import List, Optional, Tuple

from sqlalchemy import select, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.config.constants import (
    STATUS_ACCEPTED,
    STATUS_ACTIVE,
    STATUS_PENDING,
    MESSAGING_STATUSES,
    MESSAGE_TYPES,
    LAST_MESSAGE_PREVIEW_CHARS,
    DEFAULT_MESSAGES_PAGE_SIZE,
)
from consultation.models.conversation import Conversation
from consultation.models.database import utcnow
from consultation.models.message import Message
from consultation.services.media import display_url
from consultation.services.metrics import messages_sent
from consultation.services.protocols import MediaUrlSignerProtocol
from .exceptions import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from .parties import ConversationParty
from .validators import get_participant_conversation, validate_pagination

logger = logging.getLogger(__name__)


async def send_message(
    db: AsyncSession,
    party: ConversationParty,
    conversation_id: str,
    content: Optional[str],
    message_type: str = "text",
    media_url: Optional[str] = None,
) -> Tuple[Message, Conversation]:
    """
    Persist a message and update the conversation snapshot.

    Raises:
        ValidationError if content or conversation id is missing, or the type is unknown
        NotFoundError if the conversation doesn't exist
        AccessDeniedError if the caller is not a participant
        ConflictError if the conversation is not accepted/active
    """
    if not conversation_id or not content or not str(content).strip():
        raise ValidationError("conversation_id and content are required")
    message_type = message_type or "text"
    if message_type not in MESSAGE_TYPES:
        raise ValidationError(f"message_type must be one of: {', '.join(MESSAGE_TYPES)}")

    conversation = await get_participant_conversation(db, party, conversation_id)
    if conversation.status not in MESSAGING_STATUSES:
        raise ConflictError(f"Cannot send messages in a {conversation.status} conversation")

    now = utcnow()
    receiver_id = party.peer_id(conversation)
    message = Message(
        conversation_id=conversation.id,
        sender_id=party.id,
        sender_role=party.role,
        receiver_id=receiver_id,
        receiver_role=party.peer_role,
        message_type=message_type,
        content=content,
        media_url=media_url,
        created_at=now,
    )
    db.add(message)

    peer_unread = getattr(Conversation, party.peer_unread_attr)
    result = await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id, Conversation.status.in_(MESSAGING_STATUSES))
        .values(
            {
                peer_unread: peer_unread + 1,
                Conversation.messages_count: Conversation.messages_count + 1,
                Conversation.last_message_at: now,
                Conversation.last_message: {
                    "content": content[:LAST_MESSAGE_PREVIEW_CHARS],
                    "sender_id": party.id,
                    "sender_role": party.role,
                    "message_type": message_type,
                    "created_at": now.isoformat(),
                },
                # First message after acceptance starts the active session
                Conversation.status: case(
                    (Conversation.status == STATUS_ACCEPTED, STATUS_ACTIVE),
                    else_=Conversation.status,
                ),
            }
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise ConflictError("Conversation is no longer open for messages")

    await db.commit()
    await db.refresh(conversation)
    await db.refresh(message)
    messages_sent.labels(message_type=message_type).inc()

    logger.info(f"[Messages] {party.role} {party.id} -> {conversation.id} (message {message.id})")
    return message, conversation


async def mark_read(
    db: AsyncSession,
    party: ConversationParty,
    conversation_id: str,
    message_ids: Optional[List[int]] = None,
) -> int:
    """
    Mark inbound unread messages read and reset the caller's unread counter.

    Returns:
        Number of messages flagged as read
    """
    conversation = await get_participant_conversation(db, party, conversation_id)
    now = utcnow()

    query = update(Message).where(
        Message.conversation_id == conversation.id,
        Message.receiver_id == party.id,
        Message.is_read == False,
    )
    if message_ids:
        query = query.where(Message.id.in_(message_ids))

    result = await db.execute(
        query.values(
            is_read=True,
            read_at=now,
            is_delivered=True,
            delivered_at=func.coalesce(Message.delivered_at, now),
        ).execution_options(synchronize_session=False)
    )
    marked = result.rowcount or 0

    await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id)
        .values({getattr(Conversation, party.unread_attr): 0})
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(conversation)

    if marked:
        logger.debug(f"[Messages] {party.id} read {marked} messages in {conversation.id}")
    return marked


async def list_messages(
    db: AsyncSession,
    party: ConversationParty,
    conversation_id: str,
    page: int = 1,
    limit: int = DEFAULT_MESSAGES_PAGE_SIZE,
    signer: Optional[MediaUrlSignerProtocol] = None,
) -> dict:
    """
    One page of messages, newest page first, each page in chronological order.

    Soft-deleted messages are hidden. Pending conversations are not readable.
    """
    validate_pagination(page, limit)
    conversation = await get_participant_conversation(db, party, conversation_id)
    if conversation.status == STATUS_PENDING:
        raise AccessDeniedError("Conversation has not been accepted yet")

    visible = (Message.conversation_id == conversation.id, Message.is_deleted == False)
    total = (await db.execute(select(func.count()).select_from(Message).where(*visible))).scalar_one()

    result = await db.execute(
        select(Message)
        .where(*visible)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    messages = list(reversed(result.scalars().all()))

    total_pages = math.ceil(total / limit) if total else 0
    return {
        "conversation": conversation.to_dict(include_context=party.can_accept),
        "messages": [m.to_dict(display_url(signer, m.media_url)) for m in messages],
        "pagination": {
            "page": page,
            "limit": limit,
            "total_messages": total,
            "total_pages": total_pages,
            "has_more": page < total_pages,
        },
    }


async def delete_message(
    db: AsyncSession,
    party: ConversationParty,
    conversation_id: str,
    message_id: int,
) -> Message:
    """Soft delete one of the caller's own messages."""
    conversation = await get_participant_conversation(db, party, conversation_id)

    result = await db.execute(
        select(Message).where(Message.id == message_id, Message.conversation_id == conversation.id)
    )
    message = result.scalar_one_or_none()
    if not message:
        raise NotFoundError("Message not found")
    if message.sender_id != party.id:
        raise AccessDeniedError("Only the sender can delete a message")

    if not message.is_deleted:
        message.is_deleted = True
        message.deleted_at = utcnow()
        await db.commit()
        logger.info(f"[Messages] Message {message_id} deleted by {party.id}")
    return message
