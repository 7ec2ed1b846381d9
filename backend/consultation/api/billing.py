from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.config.constants import DEFAULT_HISTORY_PAGE_SIZE
from consultation.models.database import get_db
from consultation.api.deps import get_current_party
from consultation.schemas.conversation import ApiResponse
from consultation.services.billing import billing_history
from consultation.services.conversation.parties import ConversationParty
from consultation.services.conversation.validators import validate_pagination

router = APIRouter()


@router.get("/billing/history", response_model=ApiResponse)
async def get_billing_history(
    page: int = 1,
    limit: int = DEFAULT_HISTORY_PAGE_SIZE,
    db: AsyncSession = Depends(get_db),
    party: ConversationParty = Depends(get_current_party)
):
    """Ledger entries for the caller: debits for users, credits for partners."""
    validate_pagination(page, limit)
    return ApiResponse(data=await billing_history(db, party, page, limit))
