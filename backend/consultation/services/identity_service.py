from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from consultation.config.constants import ROLE_PARTNER
from consultation.models.user import User
from consultation.models.partner import Partner
from consultation.services.auth_service import decode_token, IDENTITY_NOT_FOUND
from consultation.services.conversation.exceptions import AuthenticationError
from consultation.services.conversation.parties import ConversationParty, party_for


class IdentityService:
    """
    Centralized lookup of users and partners.
    Eliminates duplicated select(User)/select(Partner) queries across the app.
    """

    @staticmethod
    async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_partner(db: AsyncSession, partner_id: str) -> Optional[Partner]:
        result = await db.execute(select(Partner).where(Partner.id == partner_id))
        return result.scalar_one_or_none()

    @classmethod
    async def resolve_token(cls, db: AsyncSession, token: Optional[str]) -> ConversationParty:
        """
        Validate a bearer credential and load the identity behind it.

        Raises:
            AuthenticationError for a missing/invalid/expired credential or an
            identity that no longer exists.
        """
        claims = decode_token(token)
        if claims["role"] == ROLE_PARTNER:
            record = await cls.get_partner(db, claims["sub"])
        else:
            record = await cls.get_user(db, claims["sub"])

        if not record:
            raise AuthenticationError(IDENTITY_NOT_FOUND, code="identity_not_found")
        return party_for(record)


identity_service = IdentityService()
