"""
Conversation Module

Re-exports the conversation exceptions and party types. The service
singleton lives in `consultation.services.conversation_service`.
"""
from .exceptions import (
    ConsultationError,
    AuthenticationError,
    NotFoundError,
    AccessDeniedError,
    ValidationError,
    CapacityError,
    InsufficientCreditsError,
    ConflictError,
)
from .parties import ConversationParty, RequesterParty, PartnerParty, party_for

__all__ = [
    "ConsultationError",
    "AuthenticationError",
    "NotFoundError",
    "AccessDeniedError",
    "ValidationError",
    "CapacityError",
    "InsufficientCreditsError",
    "ConflictError",
    "ConversationParty",
    "RequesterParty",
    "PartnerParty",
    "party_for",
]
