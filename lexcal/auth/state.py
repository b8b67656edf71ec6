"""Signed, short-lived OAuth state tokens.

The state parameter is the only link between a provider callback and a user,
so it carries the user id inside an HS256 JWT with a purpose claim, a nonce and
an expiry. A callback is trusted only after all three check out.
"""

import logging
import secrets
from datetime import timedelta

from jose import JWTError, jwt

from lexcal.config import get_settings, get_state_secret
from lexcal.database import utcnow
from lexcal.errors import InvalidState

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
STATE_PURPOSE = "google_calendar_connect"


def create_oauth_state(user_id: str) -> str:
    """Create a state token binding the consent flow to ``user_id``."""
    settings = get_settings()
    expire = utcnow() + timedelta(minutes=settings.oauth_state_ttl_minutes)
    data = {
        "sub": user_id,
        "purpose": STATE_PURPOSE,
        "nonce": secrets.token_urlsafe(16),
        "exp": expire,
    }
    return jwt.encode(data, get_state_secret(), algorithm=ALGORITHM)


def verify_oauth_state(state: str) -> str:
    """Return the user id embedded in a valid state token."""
    try:
        payload = jwt.decode(state, get_state_secret(), algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected OAuth state: {e}")
        raise InvalidState() from e

    user_id = payload.get("sub")
    if payload.get("purpose") != STATE_PURPOSE or not user_id:
        logger.warning("Rejected OAuth state: wrong purpose or missing subject")
        raise InvalidState()

    return user_id
