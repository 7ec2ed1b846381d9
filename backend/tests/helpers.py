import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from consultation.config.constants import ROLE_USER, ROLE_PARTNER, PARTNER_STATUS_OFFLINE
from consultation.models import User, Partner, Conversation, pair_key, utcnow
from consultation.services.auth_service import create_access_token
from consultation.services.connection import ClientConnection
from consultation.services.conversation.parties import RequesterParty, PartnerParty


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


async def create_user(db, credit_balance: int = 10, full_name: str = "Test User", profile: Optional[dict] = None) -> User:
    user = User(
        email=unique_email("user"),
        full_name=full_name,
        credit_balance=credit_balance,
        profile=profile or {
            "name": full_name,
            "date_of_birth": "1990-04-12",
            "time_of_birth": "06:30",
            "place_of_birth": "Pune",
            "zodiac_sign": "Aries",
        },
    )
    db.add(user)
    await db.commit()
    return user


async def create_partner(
    db,
    max_conversations: int = 3,
    active_conversations_count: int = 0,
    online_status: str = PARTNER_STATUS_OFFLINE,
    name: str = "Test Partner",
    rating: float = 0.0,
    total_sessions: int = 0,
    is_verified: bool = True,
) -> Partner:
    partner = Partner(
        name=name,
        email=unique_email("partner"),
        max_conversations=max_conversations,
        active_conversations_count=active_conversations_count,
        online_status=online_status,
        rating=rating,
        total_sessions=total_sessions,
        is_verified=is_verified,
    )
    db.add(partner)
    await db.commit()
    return partner


async def create_conversation(
    db,
    user: User,
    partner: Partner,
    status: str = "pending",
    accepted_at: Optional[datetime] = None,
) -> Conversation:
    """Insert a conversation row directly, bypassing the service checks."""
    now = utcnow()
    open_ = status in ("pending", "accepted", "active")
    conversation = Conversation(
        id=f"{user.id}_{partner.id}_{uuid.uuid4().hex[:6]}",
        user_id=user.id,
        partner_id=partner.id,
        initiated_by=ROLE_USER,
        status=status,
        active_pair_key=pair_key(user.id, partner.id) if open_ else None,
        is_accepted_by_partner=accepted_at is not None,
        accepted_at=accepted_at,
        session_started_at=accepted_at,
        created_at=now - timedelta(minutes=10),
    )
    db.add(conversation)
    await db.commit()
    return conversation


def user_party(user: User) -> RequesterParty:
    return RequesterParty(user)


def partner_party(partner: Partner) -> PartnerParty:
    return PartnerParty(partner)


def token_for(record, expires_delta: Optional[timedelta] = None) -> str:
    role = ROLE_PARTNER if isinstance(record, Partner) else ROLE_USER
    return create_access_token(record.id, role=role, expires_delta=expires_delta)


def auth_headers(record) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(record)}"}


class RecordingSocket:
    """Stands in for a WebSocket; keeps every frame sent to it."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send_json(self, data):
        self.sent.append(data)

    def events(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        if event_type is None:
            return list(self.sent)
        return [frame for frame in self.sent if frame.get("type") == event_type]


async def connect(registry, record) -> ClientConnection:
    """Register a recording connection for a user or partner."""
    role = ROLE_PARTNER if isinstance(record, Partner) else ROLE_USER
    conn = ClientConnection(RecordingSocket(), record.id, role)
    await registry.register(conn)
    return conn
