"""
Database Models Package

This module exports all SQLAlchemy models for the consultation core.

Tables:
1. users - Requesters (credit balance, profile snapshot source)
2. partners - Providers (presence, capacity, earnings, rating)
3. conversations - Consultation lifecycle and denormalized snapshot
4. messages - Chat messages per conversation
5. service_credit_ledger - Settlement audit trail
6. conversation_sessions - Session analytics history
"""

from .database import (
    engine,
    AsyncSessionLocal,
    Base,
    init_db,
    reset_db,
    get_db,
    utcnow,
)

from .user import User
from .partner import Partner
from .conversation import Conversation, pair_key
from .message import Message
from .service_credit_ledger import ServiceCreditLedger
from .conversation_session import ConversationSession

__all__ = [
    # Database utilities
    "engine",
    "AsyncSessionLocal",
    "Base",
    "init_db",
    "reset_db",
    "get_db",
    "utcnow",

    # Models
    "User",
    "Partner",
    "Conversation",
    "pair_key",
    "Message",
    "ServiceCreditLedger",
    "ConversationSession",
]
