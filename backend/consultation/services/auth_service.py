"""
Auth Service - Bearer credential handling

Credentials are issued by the external identity gateway with a shared
secret. This module validates them and reports each failure class with a
distinct reason. `create_access_token` is used by tooling and tests.
"""
from datetime import datetime, timedelta, UTC
from typing import Optional

from jose import jwt, ExpiredSignatureError, JWTError

from consultation.config.settings import settings
from consultation.config.constants import ROLE_USER, ROLE_PARTNER
from consultation.services.conversation.exceptions import AuthenticationError

MISSING_CREDENTIAL = "Authentication required"
INVALID_CREDENTIAL = "Invalid token"
EXPIRED_CREDENTIAL = "Token expired"
IDENTITY_NOT_FOUND = "User not found"


def create_access_token(subject: str, role: str = ROLE_USER, expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(days=settings.JWT_EXP_DAYS)
    expire = datetime.now(UTC) + expires_delta
    to_encode = {"sub": subject, "role": role, "exp": int(expire.timestamp())}
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    """Strip the `Bearer ` scheme from an Authorization header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def decode_token(token: Optional[str]) -> dict:
    """
    Validate a bearer credential and return its claims.

    Raises:
        AuthenticationError with code missing_credential, invalid_credential
        or expired_credential.
    """
    if not token:
        raise AuthenticationError(MISSING_CREDENTIAL, code="missing_credential")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError(EXPIRED_CREDENTIAL, code="expired_credential")
    except JWTError:
        raise AuthenticationError(INVALID_CREDENTIAL, code="invalid_credential")

    role = payload.get("role")
    subject = payload.get("sub")
    if not subject:
        # Older tokens carry the id under a role-specific claim
        if payload.get("partnerId"):
            subject, role = payload["partnerId"], role or ROLE_PARTNER
        elif payload.get("userId"):
            subject, role = payload["userId"], role or ROLE_USER

    if role not in (ROLE_USER, ROLE_PARTNER):
        raise AuthenticationError(INVALID_CREDENTIAL, code="invalid_credential")
    if not subject:
        raise AuthenticationError(INVALID_CREDENTIAL, code="invalid_credential")

    return {"sub": str(subject), "role": role}
