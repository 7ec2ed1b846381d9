"""
Conversation History

Read-side queries over conversations:
- Caller's conversation list, most recent first
- Pending requests waiting on a partner
- Frozen requester context for the partner
- Unread summary badge
"""
from typing import List, Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.config.constants import STATUS_PENDING
from consultation.models.conversation import Conversation
from consultation.models.user import User
from .exceptions import AccessDeniedError, ValidationError
from .parties import ConversationParty
from .validators import get_participant_conversation

ALL_STATUSES = ("pending", "accepted", "active", "ended", "rejected")


async def _peer_records(db: AsyncSession, party: ConversationParty, conversations: List[Conversation]) -> dict:
    peer_ids = {party.peer_id(c) for c in conversations}
    if not peer_ids:
        return {}
    model = party.peer_model
    result = await db.execute(select(model).where(model.id.in_(peer_ids)))
    return {record.id: record for record in result.scalars().all()}


async def list_conversations(
    db: AsyncSession,
    party: ConversationParty,
    status: Optional[str] = None
) -> List[dict]:
    """
    Conversations involving the caller, sorted by last activity.

    Each item carries the caller's own unread count and the peer's public
    profile. Only partners see the frozen requester context.
    """
    query = select(Conversation).where(party.owner_column == party.id)
    if status:
        if status not in ALL_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ALL_STATUSES)}")
        query = query.where(Conversation.status == status)

    query = query.order_by(
        func.coalesce(Conversation.last_message_at, Conversation.created_at).desc(),
        Conversation.created_at.desc(),
    )
    result = await db.execute(query)
    conversations = result.scalars().all()
    peers = await _peer_records(db, party, conversations)

    items = []
    for conversation in conversations:
        data = conversation.to_dict(include_context=party.sees_context)
        peer_id = party.peer_id(conversation)
        peer = peers.get(peer_id)
        data["peer_id"] = peer_id
        data["peer"] = peer.to_public_dict() if peer else None
        data["unread"] = party.unread_in(conversation)
        items.append(data)
    return items


async def list_pending_requests(db: AsyncSession, party: ConversationParty) -> List[dict]:
    """Pending requests addressed to a partner, newest first."""
    if not party.can_accept:
        raise AccessDeniedError("Only partners have incoming requests")

    result = await db.execute(
        select(Conversation)
        .where(Conversation.partner_id == party.id, Conversation.status == STATUS_PENDING)
        .order_by(Conversation.created_at.desc())
    )
    conversations = result.scalars().all()
    users = await _peer_records(db, party, conversations)

    requests = []
    for conversation in conversations:
        data = conversation.to_dict(include_context=True)
        user = users.get(conversation.user_id)
        data["user"] = user.to_public_dict() if user else None
        requests.append(data)
    return requests


async def get_context_snapshot(db: AsyncSession, party: ConversationParty, conversation_id: str) -> dict:
    """Frozen requester data captured when the conversation was created."""
    if not party.sees_context:
        raise AccessDeniedError("Only partners can view the requester context")

    conversation = await get_participant_conversation(db, party, conversation_id)
    user = (await db.execute(select(User).where(User.id == conversation.user_id))).scalar_one_or_none()
    return {
        "conversation_id": conversation.id,
        "user": user.to_public_dict() if user else None,
        "user_astrology_data": conversation.user_astrology_data,
    }


async def unread_summary(db: AsyncSession, party: ConversationParty) -> dict:
    unread_column = getattr(Conversation, party.unread_attr)
    owner = party.owner_column

    total_unread, conversations_with_unread = (
        await db.execute(
            select(
                func.coalesce(func.sum(unread_column), 0),
                func.sum(case((unread_column > 0, 1), else_=0)),
            ).where(owner == party.id)
        )
    ).one()

    pending_requests = 0
    if party.can_accept:
        pending_requests = (
            await db.execute(
                select(func.count())
                .select_from(Conversation)
                .where(Conversation.partner_id == party.id, Conversation.status == STATUS_PENDING)
            )
        ).scalar_one()

    return {
        "total_unread": int(total_unread or 0),
        "conversations_with_unread": int(conversations_with_unread or 0),
        "pending_requests": pending_requests,
    }
