"""
ConversationSession Model - Session Analytics Record

Denormalized history of an ended conversation, kept independent of the live
conversation row so reporting never re-derives state from it.
"""
from sqlalchemy import Column, String, DateTime, Integer, Text, JSON, ForeignKey

from .database import Base, utcnow


class ConversationSession(Base):
    """Historical copy of a concluded consultation"""
    __tablename__ = "conversation_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String(120), ForeignKey('conversations.id', ondelete='CASCADE'), unique=True, nullable=False)

    user_id = Column(String(36), nullable=False, index=True)
    partner_id = Column(String(36), nullable=False, index=True)

    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=False, default=0)
    billable_minutes = Column(Integer, nullable=False, default=0)
    messages_count = Column(Integer, nullable=False, default=0)

    credits_used = Column(Integer, nullable=False, default=0)
    credits_earned = Column(Integer, nullable=False, default=0)
    user_rate_per_minute = Column(Integer, nullable=True)
    partner_rate_per_minute = Column(Integer, nullable=True)

    rating_by_user = Column(JSON, nullable=True)
    rating_by_partner = Column(JSON, nullable=True)
    summary = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "partner_id": self.partner_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": self.duration_seconds,
            "billable_minutes": self.billable_minutes,
            "messages_count": self.messages_count,
            "credits_used": self.credits_used,
            "credits_earned": self.credits_earned,
            "rating_by_user": self.rating_by_user,
            "rating_by_partner": self.rating_by_partner,
            "summary": self.summary,
        }
