"""Caller identity from the external auth provider's JWT bearer tokens."""

import logging
from typing import Optional

from fastapi import Request
from jose import JWTError, jwt
from pydantic import BaseModel

from lexcal.config import get_settings
from lexcal.errors import ConfigurationError, Unauthenticated

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class CurrentUser(BaseModel):
    """Authenticated caller."""
    id: str
    email: Optional[str] = None


def verify_access_token(token: str) -> Optional[CurrentUser]:
    """Verify and decode a provider-issued access token."""
    settings = get_settings()
    if not settings.auth_jwt_secret:
        raise ConfigurationError("AUTH_JWT_SECRET is not configured")

    options = {"verify_aud": settings.auth_jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[ALGORITHM],
            audience=settings.auth_jwt_audience,
            options=options,
        )
    except JWTError as e:
        logger.warning(f"Invalid access token: {e}")
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    return CurrentUser(id=user_id, email=payload.get("email"))


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def get_current_user(request: Request) -> CurrentUser:
    """Get the caller from the Authorization header, raising Unauthenticated if absent."""
    token = _bearer_token(request)
    if not token:
        raise Unauthenticated()

    user = verify_access_token(token)
    if not user:
        raise Unauthenticated()
    return user
