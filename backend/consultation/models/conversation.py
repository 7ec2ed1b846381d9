"""
Conversation Model - Consultation Session Management

One row per consultation between a user and a partner. The row is never
deleted; it moves through pending -> accepted -> active -> ended (or
pending -> rejected) and carries a denormalized snapshot (preview, unread
counters, session analytics, ratings, frozen user context).

`active_pair_key` holds "<user_id>:<partner_id>" while the conversation is
non-terminal and NULL afterwards. Its unique index guarantees at most one
open conversation per pair.
"""
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, JSON, ForeignKey, Index

from .database import Base, utcnow
from consultation.config.constants import STATUS_PENDING, NON_TERMINAL_STATUSES


def pair_key(user_id: str, partner_id: str) -> str:
    return f"{user_id}:{partner_id}"


class Conversation(Base):
    """Consultation conversation"""
    __tablename__ = "conversations"

    # Globally unique, immutable conversation identifier
    id = Column(String(120), primary_key=True)

    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    partner_id = Column(String(36), ForeignKey('partners.id', ondelete='CASCADE'), nullable=False, index=True)
    initiated_by = Column(String(10), nullable=False, default='user')

    status = Column(String(10), nullable=False, default=STATUS_PENDING, index=True)
    active_pair_key = Column(String(80), unique=True, nullable=True)
    is_accepted_by_partner = Column(Boolean, default=False, nullable=False)

    # Timing
    created_at = Column(DateTime, default=utcnow, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    session_started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    ended_by = Column(String(10), nullable=True)

    # Preview & unread counters
    last_message_at = Column(DateTime, nullable=True)
    last_message = Column(JSON, nullable=True)
    unread_user = Column(Integer, nullable=False, default=0)
    unread_partner = Column(Integer, nullable=False, default=0)

    # Session analytics
    messages_count = Column(Integer, nullable=False, default=0)
    duration_seconds = Column(Integer, nullable=True)
    billable_minutes = Column(Integer, nullable=True)
    credits_used = Column(Integer, nullable=True)
    credits_earned = Column(Integer, nullable=True)
    user_rate_per_minute = Column(Integer, nullable=True)
    partner_rate_per_minute = Column(Integer, nullable=True)
    summary = Column(Text, nullable=True)

    # Per-side ratings: {"stars", "feedback", "satisfaction", "rated_at"}
    rating_by_user = Column(JSON, nullable=True)
    rating_by_partner = Column(JSON, nullable=True)

    # Frozen requester context captured at creation
    user_astrology_data = Column(JSON, nullable=True)

    __table_args__ = (
        Index('idx_conversations_user_recent', 'user_id', 'last_message_at'),
        Index('idx_conversations_partner_recent', 'partner_id', 'last_message_at'),
    )

    @property
    def is_open(self) -> bool:
        return self.status in NON_TERMINAL_STATUSES

    @property
    def was_accepted(self) -> bool:
        return self.accepted_at is not None or self.session_started_at is not None

    def session_start(self):
        """Billing start: acceptance, then session start, then creation."""
        return self.accepted_at or self.session_started_at or self.created_at

    def session_details(self) -> dict:
        return {
            "duration_seconds": self.duration_seconds,
            "billable_minutes": self.billable_minutes,
            "messages_count": self.messages_count,
            "credits_used": self.credits_used,
            "credits_earned": self.credits_earned,
            "user_rate_per_minute": self.user_rate_per_minute,
            "partner_rate_per_minute": self.partner_rate_per_minute,
            "summary": self.summary,
        }

    def to_dict(self, include_context: bool = True):
        data = {
            "conversation_id": self.id,
            "user_id": self.user_id,
            "partner_id": self.partner_id,
            "initiated_by": self.initiated_by,
            "status": self.status,
            "is_accepted_by_partner": self.is_accepted_by_partner,
            "created_at": _iso(self.created_at),
            "accepted_at": _iso(self.accepted_at),
            "session_started_at": _iso(self.session_started_at),
            "ended_at": _iso(self.ended_at),
            "rejected_at": _iso(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "ended_by": self.ended_by,
            "last_message_at": _iso(self.last_message_at),
            "last_message": self.last_message,
            "unread_count": {"user": self.unread_user, "partner": self.unread_partner},
            "session_details": self.session_details(),
            "rating": {"user": self.rating_by_user, "partner": self.rating_by_partner},
        }
        if include_context:
            data["user_astrology_data"] = self.user_astrology_data
        return data

    def __repr__(self):
        return f"<Conversation {self.id} [{self.status}]>"


def _iso(value):
    return value.isoformat() if value else None
