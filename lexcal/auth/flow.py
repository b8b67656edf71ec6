"""Google Calendar authorization flow: consent URL, callback, disconnect, status."""

import asyncio
import logging
from typing import Optional

import aiosqlite

from lexcal.auth.google import (
    CALENDAR_SCOPES,
    TokenEndpointError,
    build_auth_url,
    exchange_code_for_tokens,
)
from lexcal.auth.state import create_oauth_state, verify_oauth_state
from lexcal.config import get_callback_url, get_oauth_client
from lexcal.credentials import clear_credential, expiry_from_now, is_connected, upsert_credential
from lexcal.database import log_sync_action
from lexcal.errors import (
    AuthorizationDenied,
    InvalidCallback,
    TokenExchangeFailed,
    Unauthenticated,
)
from lexcal.sync.google_calendar import GoogleCalendarClient

logger = logging.getLogger(__name__)


def initiate(user_id: Optional[str]) -> str:
    """Build the consent URL for ``user_id``. Nothing is persisted."""
    if not user_id:
        raise Unauthenticated()

    client_id, _ = get_oauth_client()
    return build_auth_url(
        client_id=client_id,
        redirect_uri=get_callback_url(),
        scopes=CALENDAR_SCOPES,
        state=create_oauth_state(user_id),
    )


async def discover_primary_calendar(access_token: str) -> Optional[str]:
    """Find the user's primary calendar id; None if absent or the lookup fails."""
    try:
        client = GoogleCalendarClient(access_token)
        return await asyncio.to_thread(client.find_primary_calendar_id)
    except Exception as e:
        logger.warning(f"Could not look up primary calendar: {e}")
        return None


async def complete_callback(
    code: Optional[str],
    state: Optional[str],
    error: Optional[str] = None,
) -> str:
    """
    Turn a provider redirect into a stored credential.

    The caller is not authenticated; the verified ``state`` names the user.
    Returns that user id.
    """
    if error:
        logger.error(f"OAuth error: {error}")
        raise AuthorizationDenied(f"Authorization failed: {error}")

    if not code or not state:
        raise InvalidCallback()

    user_id = verify_oauth_state(state)
    redirect_uri = get_callback_url()

    try:
        tokens = await exchange_code_for_tokens(code, redirect_uri)
    except TokenEndpointError as e:
        raise TokenExchangeFailed() from e

    access_token = tokens.get("access_token")
    if not access_token:
        raise TokenExchangeFailed("Token response contained no access token")

    calendar_id = await discover_primary_calendar(access_token)
    if not calendar_id:
        logger.warning(f"No primary calendar found for user {user_id}")

    await upsert_credential(
        user_id=user_id,
        google_calendar_id=calendar_id,
        access_token=access_token,
        refresh_token=tokens.get("refresh_token"),
        token_expires_at=expiry_from_now(tokens.get("expires_in")),
    )
    await log_sync_action(user_id, "connect", "success", {"google_calendar_id": calendar_id})

    logger.info(f"Google Calendar connected for user {user_id}")
    return user_id


async def disconnect(user_id: str) -> None:
    """Clear the user's tokens and connection flag. Idempotent."""
    await clear_credential(user_id)
    await log_sync_action(user_id, "disconnect", "success", {})
    logger.info(f"Google Calendar disconnected for user {user_id}")


async def check_status(user_id: str) -> dict:
    """Report whether the user is connected; read failures report not connected."""
    try:
        connected = await is_connected(user_id)
    except aiosqlite.Error as e:
        logger.error(f"Failed to check status for user {user_id}: {e}")
        connected = False
    return {"connected": connected}
