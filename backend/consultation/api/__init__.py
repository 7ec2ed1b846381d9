from fastapi import APIRouter
from consultation.api import conversations
from consultation.api import partners
from consultation.api import billing

router = APIRouter(prefix="/chat")

# Include conversation, partner and billing routers
router.include_router(conversations.router)
router.include_router(partners.router)
router.include_router(billing.router)
