"""
Credit Billing Engine - Settlement of ended consultations.

Settlement steps, all inside the caller's transaction:
1. Session start = acceptance time -> session start time -> creation time
2. Billable minutes = ceil(elapsed minutes), floor of 1 once accepted, else 0
3. User debit = min(balance, minutes * user rate); balance never negative
4. Partner credit = minutes * partner rate, independent of the user's shortfall
5. Ledger entry upserted on (conversation_id, service_type)
6. Session analytics record upserted on conversation_id

Rates are read once per settlement and snapshotted into the ledger row and
the conversation, so history stays correct if the deployment's rates change.
"""
import logging
import math
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.config.settings import settings
from consultation.config.constants import SERVICE_TYPE_CHAT
from consultation.models.conversation import Conversation
from consultation.models.conversation_session import ConversationSession
from consultation.models.partner import Partner
from consultation.models.service_credit_ledger import ServiceCreditLedger
from consultation.models.user import User
from consultation.services.conversation.exceptions import NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class Settlement:
    """Outcome of settling one conversation."""
    billable_minutes: int
    duration_seconds: int
    user_rate_per_minute: int
    partner_rate_per_minute: int
    intended_debit: int
    user_debited: int
    partner_credited: int
    user_previous_balance: int
    user_new_balance: int
    partner_previous_balance: int
    partner_new_balance: int

    @property
    def shortfall(self) -> int:
        return self.intended_debit - self.user_debited

    def to_dict(self) -> dict:
        data = asdict(self)
        data["shortfall"] = self.shortfall
        return data


def compute_billable_minutes(start: Optional[datetime], end: datetime, was_accepted: bool) -> int:
    """
    Whole minutes to charge for a session.

    Never-accepted sessions are free. Accepted sessions are rounded up to the
    next whole minute with a one-minute minimum.
    """
    if not was_accepted or start is None:
        return 0
    elapsed_minutes = (end - start).total_seconds() / 60.0
    return max(math.ceil(elapsed_minutes), 1)


def compute_settlement(
    billable_minutes: int,
    user_balance: int,
    partner_balance: int,
    user_rate: int,
    partner_rate: int,
    duration_seconds: int = 0,
) -> Settlement:
    """Pure settlement arithmetic; no storage access."""
    user_balance = max(user_balance or 0, 0)
    partner_balance = partner_balance or 0

    intended_debit = billable_minutes * user_rate
    user_debited = min(user_balance, intended_debit)
    partner_credited = billable_minutes * partner_rate

    return Settlement(
        billable_minutes=billable_minutes,
        duration_seconds=duration_seconds,
        user_rate_per_minute=user_rate,
        partner_rate_per_minute=partner_rate,
        intended_debit=intended_debit,
        user_debited=user_debited,
        partner_credited=partner_credited,
        user_previous_balance=user_balance,
        user_new_balance=user_balance - user_debited,
        partner_previous_balance=partner_balance,
        partner_new_balance=partner_balance + partner_credited,
    )


async def settle_conversation(
    db: AsyncSession,
    conversation: Conversation,
    ended_at: datetime,
    service_type: str = SERVICE_TYPE_CHAT,
) -> Settlement:
    """
    Apply settlement for an ended conversation.

    Does not commit; the caller owns the transaction so the status change,
    balance updates, ledger and analytics land together or not at all.
    """
    user = await _load_for_update(db, User, conversation.user_id)
    partner = await _load_for_update(db, Partner, conversation.partner_id)
    if not user or not partner:
        raise NotFoundError("Conversation participant not found")

    start = conversation.session_start()
    duration_seconds = max(int((ended_at - start).total_seconds()), 0) if start else 0
    minutes = compute_billable_minutes(start, ended_at, conversation.was_accepted)

    settlement = compute_settlement(
        billable_minutes=minutes,
        user_balance=user.credit_balance,
        partner_balance=partner.credits_available,
        user_rate=settings.USER_RATE_PER_MINUTE,
        partner_rate=settings.PARTNER_RATE_PER_MINUTE,
        duration_seconds=duration_seconds,
    )

    if minutes > 0:
        user.credit_balance = settlement.user_new_balance
        partner.credits_available = settlement.partner_new_balance
        partner.total_earned_credits = (partner.total_earned_credits or 0) + settlement.partner_credited
        partner.total_sessions = (partner.total_sessions or 0) + 1

    conversation.duration_seconds = duration_seconds
    conversation.billable_minutes = minutes
    conversation.credits_used = settlement.user_debited
    conversation.credits_earned = settlement.partner_credited
    conversation.user_rate_per_minute = settlement.user_rate_per_minute
    conversation.partner_rate_per_minute = settlement.partner_rate_per_minute

    if minutes > 0:
        await upsert_ledger_entry(db, conversation, settlement, start, ended_at, service_type)
    await upsert_session_record(db, conversation, start, ended_at)

    if settlement.shortfall:
        logger.warning(
            f"[Billing] {conversation.id}: user {user.id} short by {settlement.shortfall} credits"
        )
    logger.info(
        f"[Billing] Settled {conversation.id}: {minutes} min, "
        f"debited={settlement.user_debited}, credited={settlement.partner_credited}"
    )
    return settlement


async def upsert_ledger_entry(
    db: AsyncSession,
    conversation: Conversation,
    settlement: Settlement,
    start: Optional[datetime],
    end: datetime,
    service_type: str = SERVICE_TYPE_CHAT,
) -> ServiceCreditLedger:
    """Write the ledger row for (conversation, service type), replacing any earlier one."""
    result = await db.execute(
        select(ServiceCreditLedger).where(
            ServiceCreditLedger.conversation_id == conversation.id,
            ServiceCreditLedger.service_type == service_type,
        )
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        entry = ServiceCreditLedger(
            conversation_id=conversation.id,
            service_type=service_type,
        )
        db.add(entry)

    entry.user_id = conversation.user_id
    entry.partner_id = conversation.partner_id
    entry.billable_minutes = settlement.billable_minutes
    entry.user_debited = settlement.user_debited
    entry.partner_credited = settlement.partner_credited
    entry.user_previous_balance = settlement.user_previous_balance
    entry.user_new_balance = settlement.user_new_balance
    entry.partner_previous_balance = settlement.partner_previous_balance
    entry.partner_new_balance = settlement.partner_new_balance
    entry.user_rate_per_minute = settlement.user_rate_per_minute
    entry.partner_rate_per_minute = settlement.partner_rate_per_minute
    entry.start_time = start
    entry.end_time = end
    await db.flush()
    return entry


async def upsert_session_record(
    db: AsyncSession,
    conversation: Conversation,
    start: Optional[datetime],
    end: Optional[datetime],
) -> ConversationSession:
    """Copy the ended conversation's analytics into its history record."""
    result = await db.execute(
        select(ConversationSession).where(ConversationSession.conversation_id == conversation.id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        record = ConversationSession(conversation_id=conversation.id)
        db.add(record)

    record.user_id = conversation.user_id
    record.partner_id = conversation.partner_id
    record.started_at = start
    record.ended_at = end
    record.duration_seconds = conversation.duration_seconds or 0
    record.billable_minutes = conversation.billable_minutes or 0
    record.messages_count = conversation.messages_count or 0
    record.credits_used = conversation.credits_used or 0
    record.credits_earned = conversation.credits_earned or 0
    record.user_rate_per_minute = conversation.user_rate_per_minute
    record.partner_rate_per_minute = conversation.partner_rate_per_minute
    record.rating_by_user = conversation.rating_by_user
    record.rating_by_partner = conversation.rating_by_partner
    record.summary = conversation.summary
    await db.flush()
    return record


async def billing_history(db: AsyncSession, party, page: int = 1, limit: int = 20) -> dict:
    """
    Paginated ledger entries for the caller's side.

    Requesters see the debit view, partners the credit view.
    """
    is_partner = party.rate_role == "credit"
    owner_column = ServiceCreditLedger.partner_id if is_partner else ServiceCreditLedger.user_id

    total = (
        await db.execute(select(func.count()).select_from(ServiceCreditLedger).where(owner_column == party.id))
    ).scalar_one()

    result = await db.execute(
        select(ServiceCreditLedger)
        .where(owner_column == party.id)
        .order_by(ServiceCreditLedger.created_at.desc(), ServiceCreditLedger.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    entries = result.scalars().all()

    return {
        "entries": [e.to_partner_dict() if is_partner else e.to_user_dict() for e in entries],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if limit else 0,
            "has_more": page * limit < total,
        },
    }


async def _load_for_update(db: AsyncSession, model, record_id: str):
    result = await db.execute(
        select(model)
        .where(model.id == record_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
