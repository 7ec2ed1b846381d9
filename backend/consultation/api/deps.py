from typing import Optional
from fastapi import WebSocket, Header, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from consultation.config.constants import ROLE_PARTNER, ROLE_USER
from consultation.models.database import get_db
from consultation.services.auth_service import extract_bearer, INVALID_CREDENTIAL
from consultation.services.conversation.exceptions import AuthenticationError, AccessDeniedError
from consultation.services.conversation.parties import ConversationParty
from consultation.services.identity_service import identity_service

logger = logging.getLogger(__name__)


async def get_current_party(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db)
) -> ConversationParty:
    """
    REST dependency: resolve `Authorization: Bearer <token>` to a party.
    Raises AuthenticationError (401) with the specific failure reason.
    """
    token = extract_bearer(authorization)
    if authorization and not token:
        raise AuthenticationError(INVALID_CREDENTIAL, code="invalid_credential")
    return await identity_service.resolve_token(db, token)


async def get_current_partner(party: ConversationParty = Depends(get_current_party)) -> ConversationParty:
    if party.role != ROLE_PARTNER:
        raise AccessDeniedError("Partner access required")
    return party


async def get_current_requester(party: ConversationParty = Depends(get_current_party)) -> ConversationParty:
    if party.role != ROLE_USER:
        raise AccessDeniedError("User access required")
    return party


async def authenticate_websocket(
    websocket: WebSocket,
    db: AsyncSession
) -> Optional[ConversationParty]:
    """
    Admit a WebSocket connection.

    The credential is read from `?token=` or the Authorization header. On
    failure the socket is closed with 1008 and the specific reason, and None
    is returned.
    """
    token = websocket.query_params.get("token")
    if not token:
        token = extract_bearer(websocket.headers.get("authorization"))

    try:
        return await identity_service.resolve_token(db, token)
    except AuthenticationError as e:
        logger.warning(f"[Gateway] Admission refused: {e.code}")
        await websocket.close(code=1008, reason=e.message)
        return None
