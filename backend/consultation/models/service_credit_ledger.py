"""
ServiceCreditLedger Model - Settlement Audit Trail

One row per (conversation, service type). Settlement upserts on that key,
so a retried settlement rewrites the row instead of adding a second one.
Balances before/after and the per-minute rates are snapshotted at
settlement time.
"""
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, UniqueConstraint, Index, CheckConstraint

from .database import Base, utcnow
from consultation.config.constants import SERVICE_TYPE_CHAT, SERVICE_TYPES


class ServiceCreditLedger(Base):
    """Credit movement for one settled consultation"""
    __tablename__ = "service_credit_ledger"

    id = Column(Integer, primary_key=True, autoincrement=True)

    conversation_id = Column(String(120), ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False, index=True)
    service_type = Column(String(10), nullable=False, default=SERVICE_TYPE_CHAT)

    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    partner_id = Column(String(36), ForeignKey('partners.id', ondelete='CASCADE'), nullable=False)

    billable_minutes = Column(Integer, nullable=False, default=0)
    user_debited = Column(Integer, nullable=False, default=0)
    partner_credited = Column(Integer, nullable=False, default=0)

    user_previous_balance = Column(Integer, nullable=False, default=0)
    user_new_balance = Column(Integer, nullable=False, default=0)
    partner_previous_balance = Column(Integer, nullable=False, default=0)
    partner_new_balance = Column(Integer, nullable=False, default=0)

    # Pricing snapshot
    user_rate_per_minute = Column(Integer, nullable=False)
    partner_rate_per_minute = Column(Integer, nullable=False)

    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('conversation_id', 'service_type', name='uq_ledger_conversation_service'),
        CheckConstraint(
            "service_type IN (" + ", ".join(f"'{t}'" for t in SERVICE_TYPES) + ")",
            name="ck_ledger_service_type",
        ),
        Index('idx_ledger_user_created', 'user_id', 'created_at'),
        Index('idx_ledger_partner_created', 'partner_id', 'created_at'),
    )

    def to_user_dict(self):
        """Debit view for the requester."""
        return {
            **self._common(),
            "debited": self.user_debited,
            "previous_balance": self.user_previous_balance,
            "new_balance": self.user_new_balance,
            "rate_per_minute": self.user_rate_per_minute,
        }

    def to_partner_dict(self):
        """Credit view for the partner."""
        return {
            **self._common(),
            "credited": self.partner_credited,
            "previous_balance": self.partner_previous_balance,
            "new_balance": self.partner_new_balance,
            "rate_per_minute": self.partner_rate_per_minute,
        }

    def to_dict(self):
        return {
            **self._common(),
            "user_debited": self.user_debited,
            "partner_credited": self.partner_credited,
            "user_previous_balance": self.user_previous_balance,
            "user_new_balance": self.user_new_balance,
            "partner_previous_balance": self.partner_previous_balance,
            "partner_new_balance": self.partner_new_balance,
            "user_rate_per_minute": self.user_rate_per_minute,
            "partner_rate_per_minute": self.partner_rate_per_minute,
        }

    def _common(self):
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "service_type": self.service_type,
            "user_id": self.user_id,
            "partner_id": self.partner_id,
            "billable_minutes": self.billable_minutes,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ServiceCreditLedger {self.conversation_id}/{self.service_type}>"
