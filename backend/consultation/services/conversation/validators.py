"""
Conversation Validators

Lookup and validation helpers shared by the conversation operations:
- Conversation existence and participant checks
- Rating payload validation
- Pagination bounds
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.config.constants import (
    RATING_MIN_STARS,
    RATING_MAX_STARS,
    SATISFACTION_VALUES,
    MAX_PAGE_SIZE,
)
from consultation.models.conversation import Conversation
from .exceptions import NotFoundError, AccessDeniedError, ValidationError
from .parties import ConversationParty

MAX_FEEDBACK_CHARS = 1000


async def get_conversation(db: AsyncSession, conversation_id: str) -> Conversation:
    """
    Load a conversation by id.

    Raises:
        ValidationError if no id was given
        NotFoundError if the conversation doesn't exist
    """
    if not conversation_id:
        raise ValidationError("conversation_id is required")

    result = await db.execute(select(Conversation).where(Conversation.id == conversation_id))
    conversation = result.scalar_one_or_none()
    if not conversation:
        raise NotFoundError("Conversation not found")
    return conversation


async def get_participant_conversation(
    db: AsyncSession,
    party: ConversationParty,
    conversation_id: str
) -> Conversation:
    """
    Load a conversation and check the caller is on the matching side of it.

    Raises:
        NotFoundError if the conversation doesn't exist
        AccessDeniedError if the caller is not its user/partner
    """
    conversation = await get_conversation(db, conversation_id)
    if not party.owns(conversation):
        raise AccessDeniedError("You are not a participant of this conversation")
    return conversation


def validate_rating(
    stars,
    feedback: Optional[str] = None,
    satisfaction: Optional[str] = None
) -> dict:
    """
    Normalize a rating payload.

    Returns:
        {"stars", "feedback", "satisfaction"} ready to be stamped and stored
    """
    if isinstance(stars, bool) or not isinstance(stars, int):
        raise ValidationError("stars must be an integer")
    if not RATING_MIN_STARS <= stars <= RATING_MAX_STARS:
        raise ValidationError(f"stars must be between {RATING_MIN_STARS} and {RATING_MAX_STARS}")

    if satisfaction is not None and satisfaction not in SATISFACTION_VALUES:
        raise ValidationError(f"satisfaction must be one of: {', '.join(SATISFACTION_VALUES)}")

    if feedback is not None:
        feedback = feedback.strip()
        if len(feedback) > MAX_FEEDBACK_CHARS:
            raise ValidationError(f"feedback must be at most {MAX_FEEDBACK_CHARS} characters")

    return {
        "stars": stars,
        "feedback": feedback or None,
        "satisfaction": satisfaction,
    }


def validate_pagination(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError("page must be >= 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
