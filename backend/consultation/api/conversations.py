"""
Conversations API - Consultation lifecycle and messages

Implements:
- Conversation creation and listing
- End (with settlement) and ratings
- Messages: list, REST fallback send, soft delete, mark read
- Requester context snapshot and unread badge
"""
from typing import Optional
from fastapi import APIRouter, Depends, Response, status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.config.constants import DEFAULT_MESSAGES_PAGE_SIZE
from consultation.models.database import get_db
from consultation.api.deps import get_current_party
from consultation.schemas.conversation import (
    ApiResponse,
    CreateConversationRequest,
    EndConversationRequest,
    RatingRequest,
    SendMessageRequest,
    MarkReadRequest,
)
from consultation.services.conversation.parties import ConversationParty
from consultation.services.conversation_service import conversation_service, message_dispatcher
from consultation.services.media import media_signer

router = APIRouter()


@router.post("/conversations", response_model=ApiResponse)
async def create_conversation(
    req: CreateConversationRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    """
    Request a consultation.

    Returns the existing open conversation for the pair if there is one
    (200), otherwise the new pending conversation (201).
    """
    peer_id = getattr(req, f"{party.peer_role}_id")
    conversation, created = await conversation_service.create_conversation(
        db, party, peer_id, req.astrology_data
    )
    response.status_code = http_status.HTTP_201_CREATED if created else http_status.HTTP_200_OK
    return ApiResponse(
        message="Conversation request sent" if created else "Conversation already exists",
        data={"conversation": conversation.to_dict(), "created": created},
    )


@router.get("/conversations", response_model=ApiResponse)
async def list_conversations(
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    conversations = await conversation_service.list_conversations(db, party, status)
    return ApiResponse(data={"conversations": conversations, "count": len(conversations)})


@router.patch("/conversations/{conversation_id}/end", response_model=ApiResponse)
async def end_conversation(
    conversation_id: str,
    req: Optional[EndConversationRequest] = None,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    """End a conversation, settle credits and optionally rate it."""
    rating = req.rating() if req else None
    conversation, settlement = await conversation_service.end_conversation(
        db, party, conversation_id, rating
    )
    return ApiResponse(
        message="Conversation ended",
        data={"conversation": conversation.to_dict(include_context=False), "billing": settlement.to_dict()},
    )


@router.post("/conversations/{conversation_id}/rating", response_model=ApiResponse)
async def rate_conversation(
    conversation_id: str,
    req: RatingRequest,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    conversation = await conversation_service.submit_rating(
        db, party, conversation_id, req.stars, req.feedback, req.satisfaction
    )
    return ApiResponse(
        message="Rating submitted",
        data={"conversation_id": conversation.id, "rating": getattr(conversation, party.rating_attr())},
    )


@router.get("/conversations/{conversation_id}/messages", response_model=ApiResponse)
async def list_messages(
    conversation_id: str,
    page: int = 1,
    limit: int = DEFAULT_MESSAGES_PAGE_SIZE,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    data = await conversation_service.list_messages(
        db, party, conversation_id, page, limit, signer=media_signer
    )
    return ApiResponse(data=data)


@router.post("/conversations/{conversation_id}/messages", response_model=ApiResponse,
             status_code=http_status.HTTP_201_CREATED)
async def send_message(
    conversation_id: str,
    req: SendMessageRequest,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    """REST fallback for `message:send`; same validation and side effects."""
    message, conversation = await conversation_service.send_message(
        db, party, conversation_id, req.content, req.message_type, req.media_url
    )
    await message_dispatcher.deliver(db, message, conversation, party)
    return ApiResponse(message="Message sent", data={"message": message.to_dict()})


@router.delete("/conversations/{conversation_id}/messages/{message_id}", response_model=ApiResponse)
async def delete_message(
    conversation_id: str,
    message_id: int,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    await conversation_service.delete_message(db, party, conversation_id, message_id)
    return ApiResponse(message="Message deleted", data={"message_id": message_id})


@router.patch("/conversations/{conversation_id}/read", response_model=ApiResponse)
async def mark_read(
    conversation_id: str,
    req: Optional[MarkReadRequest] = None,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    marked = await conversation_service.mark_read(
        db, party, conversation_id, req.message_ids if req else None
    )
    return ApiResponse(data={"conversation_id": conversation_id, "marked_read": marked})


@router.get("/conversation/{conversation_id}/astrology", response_model=ApiResponse)
async def get_astrology_context(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    """Partner-only view of the requester data frozen at request time."""
    data = await conversation_service.get_context_snapshot(db, party, conversation_id)
    return ApiResponse(data=data)


@router.get("/unread-count", response_model=ApiResponse)
async def unread_count(
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    return ApiResponse(data=await conversation_service.unread_summary(db, party))
