"""
Partner Model - Service Providers

Partner accounts are created by onboarding. This core mutates presence
(`online_status`, `last_active_at`), capacity (`active_conversations_count`),
earnings and the aggregate rating.
"""
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Float, CheckConstraint
import uuid

from .database import Base, utcnow
from consultation.config.constants import (
    DEFAULT_MAX_CONVERSATIONS,
    PARTNER_STATUS_OFFLINE,
)


class Partner(Base):
    """Consultation provider"""
    __tablename__ = "partners"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=True, index=True)
    profile_picture = Column(String(500), nullable=True)
    specialization = Column(String(255), nullable=True)
    experience = Column(Integer, default=0)

    is_active = Column(Boolean, default=True)
    is_verified = Column(Boolean, default=False)

    # Presence
    online_status = Column(String(10), nullable=False, default=PARTNER_STATUS_OFFLINE, index=True)
    last_online_at = Column(DateTime, nullable=True)
    last_active_at = Column(DateTime, nullable=True)

    # Capacity
    active_conversations_count = Column(Integer, nullable=False, default=0)
    max_conversations = Column(Integer, nullable=False, default=DEFAULT_MAX_CONVERSATIONS)
    total_sessions = Column(Integer, nullable=False, default=0)

    # Earnings
    total_earned_credits = Column(Integer, nullable=False, default=0)
    credits_available = Column(Integer, nullable=False, default=0)

    # Aggregate rating
    rating = Column(Float, nullable=False, default=0.0)
    total_ratings = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("online_status IN ('online', 'offline', 'busy')", name='ck_partner_online_status'),
        CheckConstraint("active_conversations_count >= 0", name='ck_partner_active_count'),
    )

    def can_accept_more(self) -> bool:
        return self.active_conversations_count < self.max_conversations

    @property
    def available_slots(self) -> int:
        return max(self.max_conversations - self.active_conversations_count, 0)

    def to_public_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "profile_picture": self.profile_picture,
            "specialization": self.specialization,
            "rating": self.rating,
            "online_status": self.online_status,
        }

    def to_roster_dict(self):
        """Partner row for the live roster shown to users."""
        return {
            **self.to_public_dict(),
            "experience": self.experience,
            "total_sessions": self.total_sessions,
            "total_ratings": self.total_ratings,
            "status": self.online_status,
            "active_conversations_count": self.active_conversations_count,
            "max_conversations": self.max_conversations,
            "last_active_at": self.last_active_at.isoformat() if self.last_active_at else None,
            "is_busy": not self.can_accept_more(),
            "can_accept_conversation": self.can_accept_more(),
            "available_slots": self.available_slots,
        }

    def __repr__(self):
        return f"<Partner {self.name}>"
