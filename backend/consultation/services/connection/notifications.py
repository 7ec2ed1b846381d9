"""
Connection Notifications

Functions for sending real-time notifications to connected clients:
- Partner presence changes (global roster refresh)
- Conversation lifecycle changes delivered to the other participant
"""
from typing import Any, Dict, Optional, TYPE_CHECKING
import logging

from consultation.models.database import utcnow

if TYPE_CHECKING:
    from .manager import ConnectionRegistry

logger = logging.getLogger(__name__)


async def broadcast_partner_status(
    registry: "ConnectionRegistry",
    partner_id: str,
    status: str,
    extra: Optional[Dict[str, Any]] = None
) -> int:
    """
    Broadcast a partner status change to every connected client.

    Returns:
        Number of clients notified
    """
    payload = {
        "partner_id": partner_id,
        "status": status,
        "timestamp": utcnow().isoformat(),
    }
    if extra:
        payload.update(extra)
    count = await registry.broadcast_all("partner:status:changed", payload)
    logger.debug(f"[Notify] partner {partner_id} -> {status} sent to {count} clients")
    return count


async def notify_conversation_event(
    registry: "ConnectionRegistry",
    identity_id: str,
    event: str,
    conversation: Dict[str, Any]
) -> bool:
    """
    Tell one participant about a lifecycle change (request, accept, reject, end).

    Returns:
        True if the participant was connected and the event was sent
    """
    sent = await registry.emit_to_identity(identity_id, event, {"conversation": conversation})
    if not sent:
        logger.debug(f"[Notify] {identity_id} not connected, skipped {event}")
    return sent
