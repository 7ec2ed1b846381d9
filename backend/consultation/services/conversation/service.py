"""
Conversation Service - Consultation Lifecycle

Main service class for conversation operations:
- Request creation (one open conversation per user/partner pair)
- Partner accept / reject with capacity reservation
- End with single-writer settlement and best-effort summary
- Per-side ratings

State machine:
    (none) -> pending -> accepted -> active -> ended
                     \\-> rejected
    pending|accepted|active -> ended

Each transition is a conditional UPDATE on the current status, so two racing
callers can never both win the same transition; only the winner of the
`ended` transition settles credits.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.config.constants import (
    STATUS_PENDING,
    STATUS_ACCEPTED,
    STATUS_ENDED,
    STATUS_REJECTED,
    NON_TERMINAL_STATUSES,
)
from consultation.models.conversation import Conversation, pair_key
from consultation.models.conversation_session import ConversationSession
from consultation.models.database import utcnow
from consultation.models.message import Message
from consultation.models.partner import Partner
from consultation.services import billing
from consultation.services.billing import Settlement
from consultation.services.connection import (
    ConnectionRegistry,
    connection_registry,
    notify_conversation_event,
)
from consultation.services.identity_service import identity_service
from consultation.services.metrics import conversation_transitions, settlements, credits_settled
from consultation.services.presence_service import PresenceService
from consultation.services.summary_service import SummaryService, summary_service

from .exceptions import (
    AccessDeniedError,
    CapacityError,
    ConflictError,
    InsufficientCreditsError,
    NotFoundError,
    ValidationError,
)
from .parties import ConversationParty
from .validators import get_participant_conversation, validate_rating
from . import history, messages

logger = logging.getLogger(__name__)


def make_conversation_id(user_id: str, partner_id: str, created_at: datetime) -> str:
    """Sorted participant pair plus creation time in epoch milliseconds."""
    first, second = sorted([user_id, partner_id])
    epoch_ms = int((created_at - datetime(1970, 1, 1)).total_seconds() * 1000)
    return f"{first}_{second}_{epoch_ms}"


class ConversationService:
    """Service for managing consultation conversations."""

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        presence: Optional[PresenceService] = None,
        summaries: Optional[SummaryService] = None,
    ):
        self.registry = registry or connection_registry
        self.presence = presence or PresenceService(self.registry)
        self.summaries = summaries or summary_service

    # === Read-side methods (delegates to history module) ===

    @staticmethod
    async def list_conversations(db: AsyncSession, party: ConversationParty, status: Optional[str] = None):
        return await history.list_conversations(db, party, status)

    @staticmethod
    async def list_pending_requests(db: AsyncSession, party: ConversationParty):
        return await history.list_pending_requests(db, party)

    @staticmethod
    async def get_context_snapshot(db: AsyncSession, party: ConversationParty, conversation_id: str):
        return await history.get_context_snapshot(db, party, conversation_id)

    @staticmethod
    async def unread_summary(db: AsyncSession, party: ConversationParty):
        return await history.unread_summary(db, party)

    # === Message methods (delegates to messages module) ===

    @staticmethod
    async def send_message(db: AsyncSession, party: ConversationParty, conversation_id: str,
                           content: Optional[str], message_type: str = "text",
                           media_url: Optional[str] = None) -> Tuple[Message, Conversation]:
        return await messages.send_message(db, party, conversation_id, content, message_type, media_url)

    @staticmethod
    async def mark_read(db: AsyncSession, party: ConversationParty, conversation_id: str,
                        message_ids: Optional[List[int]] = None) -> int:
        return await messages.mark_read(db, party, conversation_id, message_ids)

    @staticmethod
    async def list_messages(db: AsyncSession, party: ConversationParty, conversation_id: str,
                            page: int = 1, limit: int = 50, signer=None) -> dict:
        return await messages.list_messages(db, party, conversation_id, page, limit, signer)

    @staticmethod
    async def delete_message(db: AsyncSession, party: ConversationParty, conversation_id: str,
                             message_id: int) -> Message:
        return await messages.delete_message(db, party, conversation_id, message_id)

    # === Core lifecycle operations ===

    async def create_conversation(
        self,
        db: AsyncSession,
        party: ConversationParty,
        peer_id: Optional[str],
        astrology_data: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Conversation, bool]:
        """
        Request a consultation with a peer.

        Args:
            db: Database session
            party: The caller; a user names a partner, a partner names a user
            peer_id: The other participant's id
            astrology_data: Optional context snapshot to freeze on the conversation

        Returns:
            (conversation, created) - created is False when an open
            conversation for the pair already existed and is returned unchanged
        """
        if not peer_id:
            raise ValidationError(f"{party.peer_role}_id is required")

        # Reload both sides; the caller's record may come from an older session
        user_id, partner_id = party.pair_ids(peer_id)
        user = await identity_service.get_user(db, user_id)
        partner = await identity_service.get_partner(db, partner_id)
        if not partner:
            raise NotFoundError("Partner not found")
        if not user:
            raise NotFoundError("User not found")

        existing = await self._find_open(db, user.id, partner.id)
        if existing:
            logger.info(f"[Conversation] Reusing open conversation {existing.id}")
            return existing, False

        if party.pays and (user.credit_balance or 0) <= 0:
            raise InsufficientCreditsError("Insufficient credits to start a consultation")

        snapshot = astrology_data
        if snapshot is None and party.pays:
            snapshot = user.astrology_snapshot()

        now = utcnow()
        conversation_id = make_conversation_id(user.id, partner.id, now)
        # Same pair re-engaging within one millisecond of an earlier request
        while await db.get(Conversation, conversation_id) is not None:
            now += timedelta(milliseconds=1)
            conversation_id = make_conversation_id(user.id, partner.id, now)

        conversation = Conversation(
            id=conversation_id,
            user_id=user.id,
            partner_id=partner.id,
            initiated_by=party.role,
            status=STATUS_PENDING,
            active_pair_key=pair_key(user.id, partner.id),
            created_at=now,
            user_astrology_data=snapshot,
        )
        db.add(conversation)
        try:
            await db.commit()
        except IntegrityError:
            # Lost the race against a concurrent request for the same pair
            await db.rollback()
            existing = await self._find_open(db, user.id, partner.id)
            if existing:
                return existing, False
            raise ConflictError("Conversation could not be created, please retry")

        logger.info(f"[Conversation] Created {conversation.id} by {party.role} {party.id}")
        conversation_transitions.labels(status=STATUS_PENDING).inc()
        await notify_conversation_event(
            self.registry, party.peer_id(conversation), "conversation:request:new", conversation.to_dict()
        )
        return conversation, True

    async def accept_conversation(
        self,
        db: AsyncSession,
        party: ConversationParty,
        conversation_id: str
    ) -> Conversation:
        """
        Accept a pending request and reserve one of the partner's slots.

        Raises:
            AccessDeniedError if the caller is not the named partner
            ConflictError if the conversation is no longer pending
            CapacityError if the partner has no free slot (status unchanged)
        """
        if not party.can_accept:
            raise AccessDeniedError("Only partners can accept conversations")
        conversation = await get_participant_conversation(db, party, conversation_id)
        if conversation.status != STATUS_PENDING:
            raise ConflictError(f"Conversation is already {conversation.status}")

        now = utcnow()
        accepted = await db.execute(
            update(Conversation)
            .where(Conversation.id == conversation.id, Conversation.status == STATUS_PENDING)
            .values(
                status=STATUS_ACCEPTED,
                is_accepted_by_partner=True,
                accepted_at=now,
                session_started_at=now,
                messages_count=0,
                duration_seconds=0,
                billable_minutes=0,
                credits_used=0,
                credits_earned=0,
            )
            .execution_options(synchronize_session=False)
        )
        if accepted.rowcount == 0:
            await db.rollback()
            raise ConflictError("Conversation is no longer pending")

        reserved = await db.execute(
            update(Partner)
            .where(
                Partner.id == party.id,
                Partner.active_conversations_count < Partner.max_conversations,
            )
            .values(
                active_conversations_count=Partner.active_conversations_count + 1,
                last_active_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if reserved.rowcount == 0:
            await db.rollback()
            logger.info(f"[Conversation] Partner {party.id} at capacity, {conversation_id} stays pending")
            raise CapacityError("You have reached the maximum number of active conversations")

        await db.commit()
        await db.refresh(conversation)
        partner = await self._refresh_partner(db, party.id)
        logger.info(
            f"[Conversation] {conversation.id} accepted by {party.id} "
            f"({partner.active_conversations_count}/{partner.max_conversations})"
        )
        conversation_transitions.labels(status=STATUS_ACCEPTED).inc()

        await self.presence.refresh_capacity_status(db, partner)
        await notify_conversation_event(
            self.registry, conversation.user_id, "conversation:accepted", conversation.to_dict(include_context=False)
        )
        return conversation

    async def reject_conversation(
        self,
        db: AsyncSession,
        party: ConversationParty,
        conversation_id: str,
        reason: Optional[str] = None
    ) -> Conversation:
        """Reject a pending request. Terminal; frees the pair for a new request."""
        if not party.can_reject:
            raise AccessDeniedError("Only partners can reject conversations")
        conversation = await get_participant_conversation(db, party, conversation_id)
        if conversation.status != STATUS_PENDING:
            raise ConflictError(f"Only pending conversations can be rejected (status: {conversation.status})")

        now = utcnow()
        result = await db.execute(
            update(Conversation)
            .where(Conversation.id == conversation.id, Conversation.status == STATUS_PENDING)
            .values(
                status=STATUS_REJECTED,
                rejected_at=now,
                rejection_reason=reason,
                active_pair_key=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise ConflictError("Conversation is no longer pending")

        await db.commit()
        await db.refresh(conversation)
        logger.info(f"[Conversation] {conversation.id} rejected by {party.id}")
        conversation_transitions.labels(status=STATUS_REJECTED).inc()

        await notify_conversation_event(
            self.registry, conversation.user_id, "conversation:rejected", conversation.to_dict(include_context=False)
        )
        return conversation

    async def end_conversation(
        self,
        db: AsyncSession,
        party: ConversationParty,
        conversation_id: str,
        rating: Optional[Dict[str, Any]] = None,
        ended_at: Optional[datetime] = None,
    ) -> Tuple[Conversation, Settlement]:
        """
        End a conversation and settle credits.

        Only the caller that wins the conditional transition to `ended` bills;
        a second end attempt gets ConflictError and changes no balance.

        Args:
            rating: Optional {"stars", "feedback", "satisfaction"} from the caller
            ended_at: End time override (defaults to now)
        """
        conversation = await get_participant_conversation(db, party, conversation_id)
        if conversation.status not in NON_TERMINAL_STATUSES:
            raise ConflictError(f"Conversation is already {conversation.status}")

        normalized_rating = None
        if rating:
            normalized_rating = validate_rating(
                rating.get("stars"), rating.get("feedback"), rating.get("satisfaction")
            )

        now = ended_at or utcnow()
        was_accepted = conversation.was_accepted

        result = await db.execute(
            update(Conversation)
            .where(Conversation.id == conversation.id, Conversation.status.in_(NON_TERMINAL_STATUSES))
            .values(
                status=STATUS_ENDED,
                ended_at=now,
                ended_by=party.role,
                active_pair_key=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise ConflictError("Conversation has already ended")
        await db.refresh(conversation)

        if was_accepted:
            await db.execute(
                update(Partner)
                .where(Partner.id == conversation.partner_id, Partner.active_conversations_count > 0)
                .values(active_conversations_count=Partner.active_conversations_count - 1, last_active_at=now)
                .execution_options(synchronize_session=False)
            )

        if normalized_rating:
            await self._apply_rating(db, party, conversation, normalized_rating, now)

        try:
            settlement = await billing.settle_conversation(db, conversation, now)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.error(f"[Conversation] Settlement failed for {conversation.id}, end rolled back")
            raise

        await db.refresh(conversation)
        logger.info(f"[Conversation] {conversation.id} ended by {party.role} {party.id}")
        conversation_transitions.labels(status=STATUS_ENDED).inc()
        settlements.labels(billed="yes" if settlement.billable_minutes else "no").inc()
        credits_settled.labels(direction="debited").inc(settlement.user_debited)
        credits_settled.labels(direction="credited").inc(settlement.partner_credited)

        partner = await self._refresh_partner(db, conversation.partner_id)
        if partner:
            await self.presence.refresh_capacity_status(db, partner)
        await notify_conversation_event(
            self.registry, party.peer_id(conversation), "conversation:ended", conversation.to_dict(include_context=False)
        )
        self.summaries.schedule(conversation.id)
        return conversation, settlement

    async def submit_rating(
        self,
        db: AsyncSession,
        party: ConversationParty,
        conversation_id: str,
        stars,
        feedback: Optional[str] = None,
        satisfaction: Optional[str] = None
    ) -> Conversation:
        """Rate an ended conversation from the caller's side."""
        rating = validate_rating(stars, feedback, satisfaction)
        conversation = await get_participant_conversation(db, party, conversation_id)
        if conversation.status != STATUS_ENDED:
            raise ConflictError("Only ended conversations can be rated")

        await self._apply_rating(db, party, conversation, rating, utcnow())

        record = (
            await db.execute(
                select(ConversationSession).where(ConversationSession.conversation_id == conversation.id)
            )
        ).scalar_one_or_none()
        if record:
            setattr(record, party.rating_attr(), getattr(conversation, party.rating_attr()))

        await db.commit()
        await db.refresh(conversation)
        logger.info(f"[Conversation] {conversation.id} rated {rating['stars']} by {party.role} {party.id}")
        return conversation

    # === Internals ===

    @staticmethod
    async def _find_open(db: AsyncSession, user_id: str, partner_id: str) -> Optional[Conversation]:
        result = await db.execute(
            select(Conversation).where(
                Conversation.user_id == user_id,
                Conversation.partner_id == partner_id,
                Conversation.status.in_(NON_TERMINAL_STATUSES),
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _refresh_partner(db: AsyncSession, partner_id: str) -> Optional[Partner]:
        partner = await identity_service.get_partner(db, partner_id)
        if partner:
            await db.refresh(partner)
        return partner

    @staticmethod
    async def _apply_rating(
        db: AsyncSession,
        party: ConversationParty,
        conversation: Conversation,
        rating: Dict[str, Any],
        rated_at: datetime
    ) -> None:
        """
        Store the caller's rating; a user's stars also feed the partner's
        aggregate. Re-rating replaces the previous score in the aggregate.
        """
        attr = party.rating_attr()
        previous = getattr(conversation, attr) or {}
        setattr(conversation, attr, {**rating, "rated_at": rated_at.isoformat()})

        if not party.pays:
            return

        result = await db.execute(select(Partner).where(Partner.id == conversation.partner_id))
        partner = result.scalar_one_or_none()
        if not partner:
            return

        count = partner.total_ratings or 0
        total = (partner.rating or 0.0) * count
        if previous.get("stars"):
            total = total - previous["stars"] + rating["stars"]
        else:
            total += rating["stars"]
            count += 1
        partner.total_ratings = count
        partner.rating = round(total / count, 2) if count else 0.0
