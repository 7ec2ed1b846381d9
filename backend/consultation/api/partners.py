"""
Partners API - Incoming requests, presence and the partner roster
"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.models.database import get_db
from consultation.api.deps import get_current_partner, get_current_requester
from consultation.schemas.conversation import (
    ApiResponse,
    PartnerStatusRequest,
    RejectConversationRequest,
)
from consultation.services.conversation.parties import ConversationParty
from consultation.services.conversation_service import conversation_service
from consultation.services.presence_service import presence_service

router = APIRouter()


@router.get("/partner/requests", response_model=ApiResponse)
async def pending_requests(
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_partner)
):
    requests = await conversation_service.list_pending_requests(db, party)
    return ApiResponse(data={"requests": requests, "count": len(requests)})


@router.post("/partner/requests/{conversation_id}/accept", response_model=ApiResponse)
async def accept_request(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_partner)
):
    conversation = await conversation_service.accept_conversation(db, party, conversation_id)
    return ApiResponse(message="Conversation accepted", data={"conversation": conversation.to_dict()})


@router.post("/partner/requests/{conversation_id}/reject", response_model=ApiResponse)
async def reject_request(
    conversation_id: str,
    req: Optional[RejectConversationRequest] = None,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_partner)
):
    conversation = await conversation_service.reject_conversation(
        db, party, conversation_id, req.reason if req else None
    )
    return ApiResponse(message="Conversation rejected", data={"conversation": conversation.to_dict()})


@router.patch("/partner/status", response_model=ApiResponse)
async def update_status(
    req: PartnerStatusRequest,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_partner)
):
    partner = await presence_service.set_partner_status(db, party.id, req.status)
    return ApiResponse(message="Status updated", data=presence_service.status_view(partner))


@router.get("/partner/status", response_model=ApiResponse)
async def get_status(party: ConversationParty = Depends(get_current_partner)):
    return ApiResponse(data=presence_service.status_view(party.record))


@router.get("/partners", response_model=ApiResponse)
async def list_partners(
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_requester)
):
    partners = await presence_service.list_partners(db)
    return ApiResponse(data={"partners": partners, "count": len(partners)})
