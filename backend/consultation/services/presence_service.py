"""
Presence & Capacity Tracker - Partner online/offline/busy status

Partner presence is tracked with:
- Database columns for the durable status shown in the roster
- Redis keys with a TTL refreshed by WebSocket heartbeats
- A global `partner:status:changed` broadcast on every change

How it works:
1. Partner connects via WebSocket -> mark_online() (busy if already at capacity)
2. Client sends heartbeat every 30s -> heartbeat() refreshes the Redis TTL
3. If heartbeats stop (crash, lost network) the Redis key expires after 60s
4. Background cleanup marks partners offline in the database once their key is gone
5. Accepting up to capacity flips online -> busy; ending frees a slot busy -> online

Redis is an accelerator only: every Redis failure is logged and the
database status still changes.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.config.constants import (
    PARTNER_STATUSES,
    PARTNER_STATUS_ONLINE,
    PARTNER_STATUS_OFFLINE,
    PARTNER_STATUS_BUSY,
    HEARTBEAT_TTL_SEC,
    STATUS_ACCEPTED,
    STATUS_ACTIVE,
    STATUS_CLEANUP_INTERVAL_SEC,
)
from consultation.config.redis import get_redis
from consultation.models import database
from consultation.models.database import utcnow
from consultation.models.conversation import Conversation
from consultation.models.partner import Partner
from consultation.services.connection import (
    ConnectionRegistry,
    broadcast_partner_status,
    connection_registry,
)
from consultation.services.conversation.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class PresenceService:
    """Service to track partner presence and capacity-driven busy status."""

    KEY_PREFIX = "presence:partner:"

    def __init__(self, registry: Optional[ConnectionRegistry] = None):
        self.registry = registry or connection_registry

    @classmethod
    def presence_key(cls, partner_id: str) -> str:
        return f"{cls.KEY_PREFIX}{partner_id}"

    async def set_partner_status(
        self,
        db: AsyncSession,
        partner_id: str,
        status: str,
        broadcast: bool = True
    ) -> Partner:
        """
        Persist a partner's status, mirror it to Redis and broadcast it.

        Raises:
            ValidationError for an unknown status
            NotFoundError if the partner doesn't exist
        """
        if status not in PARTNER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(PARTNER_STATUSES)}")

        result = await db.execute(select(Partner).where(Partner.id == partner_id))
        partner = result.scalar_one_or_none()
        if not partner:
            raise NotFoundError("Partner not found")

        now = utcnow()
        previous = partner.online_status
        partner.online_status = status
        partner.last_active_at = now
        if status == PARTNER_STATUS_ONLINE:
            partner.last_online_at = now
        await db.commit()

        await self._mirror(partner_id, status)
        logger.info(f"[Presence] Partner {partner_id} {previous} -> {status}")

        if broadcast:
            await self._broadcast(partner)
        return partner

    async def mark_online(self, db: AsyncSession, partner_id: str) -> Partner:
        """Called when a partner's connection is admitted."""
        result = await db.execute(select(Partner).where(Partner.id == partner_id))
        partner = result.scalar_one_or_none()
        if not partner:
            raise NotFoundError("Partner not found")
        status = PARTNER_STATUS_ONLINE if partner.can_accept_more() else PARTNER_STATUS_BUSY
        return await self.set_partner_status(db, partner_id, status)

    async def mark_offline(self, db: AsyncSession, partner_id: str) -> Partner:
        """Called when a partner's live connection goes away."""
        return await self.set_partner_status(db, partner_id, PARTNER_STATUS_OFFLINE)

    async def refresh_capacity_status(self, db: AsyncSession, partner: Partner) -> Optional[str]:
        """
        Flip online <-> busy after the partner's active count changed.

        Offline partners stay offline. Returns the new status if it changed.
        """
        status = partner.online_status
        if status == PARTNER_STATUS_ONLINE and not partner.can_accept_more():
            target = PARTNER_STATUS_BUSY
        elif status == PARTNER_STATUS_BUSY and partner.can_accept_more():
            target = PARTNER_STATUS_ONLINE
        else:
            return None
        await self.set_partner_status(db, partner.id, target)
        return target

    async def heartbeat(self, partner_id: str) -> None:
        """
        Process heartbeat from a partner connection.

        Refreshes the Redis TTL and the partner's last active time.
        """
        try:
            redis = await get_redis()
            key = self.presence_key(partner_id)
            if not await redis.expire(key, HEARTBEAT_TTL_SEC):
                await redis.set(key, PARTNER_STATUS_ONLINE, ex=HEARTBEAT_TTL_SEC)
        except Exception as e:
            logger.warning(f"[Presence] Heartbeat Redis error for {partner_id}: {e}")

        try:
            async with database.AsyncSessionLocal() as db:
                result = await db.execute(select(Partner).where(Partner.id == partner_id))
                partner = result.scalar_one_or_none()
                if partner:
                    partner.last_active_at = utcnow()
                    await db.commit()
        except Exception as e:
            logger.warning(f"[Presence] Heartbeat DB error for {partner_id}: {e}")

    async def is_present(self, partner_id: str) -> bool:
        """Check the Redis presence key."""
        try:
            redis = await get_redis()
            return bool(await redis.exists(self.presence_key(partner_id)))
        except Exception as e:
            logger.warning(f"[Presence] Redis lookup failed for {partner_id}: {e}")
            return self.registry.is_connected(partner_id)

    @staticmethod
    def status_view(partner: Partner) -> dict:
        return {
            "partner_id": partner.id,
            "status": partner.online_status,
            "last_active_at": partner.last_active_at.isoformat() if partner.last_active_at else None,
            "last_online_at": partner.last_online_at.isoformat() if partner.last_online_at else None,
            "active_conversations_count": partner.active_conversations_count,
            "max_conversations": partner.max_conversations,
            "can_accept_more": partner.can_accept_more(),
        }

    @staticmethod
    async def list_partners(db: AsyncSession) -> List[dict]:
        """Roster of active, verified partners for requesters."""
        result = await db.execute(
            select(Partner)
            .where(Partner.is_active == True, Partner.is_verified == True)
            .order_by(Partner.rating.desc(), Partner.total_sessions.desc())
        )
        return [p.to_roster_dict() for p in result.scalars().all()]

    async def cleanup_stale_partners(self) -> List[str]:
        """
        One sync pass: partners shown online/busy in the database whose Redis
        key has expired and who hold no live connection are marked offline.

        Returns:
            IDs of partners marked offline
        """
        redis = await get_redis()
        stale = []
        async with database.AsyncSessionLocal() as db:
            result = await db.execute(
                select(Partner).where(Partner.online_status != PARTNER_STATUS_OFFLINE)
            )
            for partner in result.scalars().all():
                if self.registry.is_connected(partner.id):
                    continue
                if await redis.exists(self.presence_key(partner.id)):
                    continue
                partner.online_status = PARTNER_STATUS_OFFLINE
                partner.last_active_at = utcnow()
                stale.append(partner)
            await db.commit()

        for partner in stale:
            logger.info(f"[Presence] Cleanup: partner {partner.id} marked offline")
            await self._broadcast(partner)
        return [p.id for p in stale]

    async def reconcile_capacity(self, db: AsyncSession, partner_id: Optional[str] = None) -> Dict[str, Tuple[int, int]]:
        """
        Recompute active_conversations_count from accepted/active conversations.

        Repairs drift left by a crash between a status change and its counter
        update. Returns {partner_id: (stored, actual)} for every corrected partner.
        """
        counts = (
            select(Conversation.partner_id, func.count())
            .where(Conversation.status.in_((STATUS_ACCEPTED, STATUS_ACTIVE)))
            .group_by(Conversation.partner_id)
        )
        query = select(Partner)
        if partner_id:
            counts = counts.where(Conversation.partner_id == partner_id)
            query = query.where(Partner.id == partner_id)

        actual = dict((await db.execute(counts)).all())
        corrected = {}
        for partner in (await db.execute(query)).scalars().all():
            expected = actual.get(partner.id, 0)
            if partner.active_conversations_count != expected:
                corrected[partner.id] = (partner.active_conversations_count, expected)
                partner.active_conversations_count = expected
        await db.commit()

        for pid, (stored, expected) in corrected.items():
            logger.warning(f"[Presence] Reconciled partner {pid} active count {stored} -> {expected}")
            partner = await db.get(Partner, pid)
            await self.refresh_capacity_status(db, partner)
        return corrected

    async def run_cleanup_loop(self):
        """Background task: runs cleanup_stale_partners every interval."""
        logger.info("[Presence] Starting presence cleanup background task")
        while True:
            await asyncio.sleep(STATUS_CLEANUP_INTERVAL_SEC)
            try:
                await self.cleanup_stale_partners()
            except Exception as e:
                logger.error(f"[Presence] Cleanup error: {e}")

    async def _mirror(self, partner_id: str, status: str) -> None:
        try:
            redis = await get_redis()
            key = self.presence_key(partner_id)
            if status == PARTNER_STATUS_OFFLINE:
                await redis.delete(key)
            else:
                await redis.set(key, status, ex=HEARTBEAT_TTL_SEC)
        except Exception as e:
            logger.warning(f"[Presence] Redis update failed for {partner_id}: {e}")

    async def _broadcast(self, partner: Partner) -> None:
        await broadcast_partner_status(self.registry, partner.id, partner.online_status, {
            "active_conversations_count": partner.active_conversations_count,
            "max_conversations": partner.max_conversations,
            "last_active_at": partner.last_active_at.isoformat() if partner.last_active_at else None,
        })


# Singleton instance
presence_service = PresenceService()
