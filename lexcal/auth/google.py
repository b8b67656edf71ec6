"""Google OAuth helpers."""

import asyncio
import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

from lexcal.config import get_oauth_client, get_settings

logger = logging.getLogger(__name__)

# Google OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Calendar read/write + events read/write
CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class TokenEndpointError(Exception):
    """The token endpoint rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def build_auth_url(
    client_id: str,
    redirect_uri: str,
    scopes: list[str],
    state: str,
    prompt: str = "consent"
) -> str:
    """Build Google OAuth authorization URL."""
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(scopes),
        "access_type": "offline",
        "state": state,
        "prompt": prompt,
    }

    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def _post_token_endpoint(data: dict, retry_transient: bool) -> dict:
    """POST a form to the token endpoint.

    With ``retry_transient`` set, 429/5xx responses and transport errors are
    retried with exponential backoff; any other non-200 response fails at once.
    """
    settings = get_settings()
    max_attempts = settings.http_max_retries if retry_transient else 1
    last_error: Optional[TokenEndpointError] = None

    for attempt in range(max(max_attempts, 1)):
        try:
            async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
                response = await client.post(GOOGLE_TOKEN_URL, data=data)
        except httpx.HTTPError as e:
            last_error = TokenEndpointError(f"Token endpoint unreachable: {e}")
        else:
            if response.status_code == 200:
                try:
                    return response.json()
                except ValueError as e:
                    raise TokenEndpointError(
                        "Token endpoint returned invalid JSON", status_code=200
                    ) from e
            last_error = TokenEndpointError(
                f"Token endpoint returned {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
            if response.status_code not in RETRYABLE_STATUS_CODES:
                raise last_error

        if attempt < max_attempts - 1:
            wait_time = 2 ** attempt  # 1s, 2s, 4s
            logger.warning(f"Token endpoint attempt {attempt + 1} failed, retrying in {wait_time}s: {last_error}")
            await asyncio.sleep(wait_time)

    raise last_error


async def exchange_code_for_tokens(code: str, redirect_uri: str) -> dict:
    """Exchange authorization code for tokens. Not retried: codes are single use."""
    client_id, client_secret = get_oauth_client()

    try:
        return await _post_token_endpoint(
            {
                "code": code,
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
            retry_transient=False,
        )
    except TokenEndpointError as e:
        logger.error(f"Token exchange failed: {e}")
        raise


async def refresh_access_token(refresh_token: str) -> dict:
    """Refresh an access token."""
    client_id, client_secret = get_oauth_client()

    try:
        return await _post_token_endpoint(
            {
                "refresh_token": refresh_token,
                "client_id": client_id,
                "client_secret": client_secret,
                "grant_type": "refresh_token",
            },
            retry_transient=True,
        )
    except TokenEndpointError as e:
        logger.error(f"Token refresh failed: {e}")
        raise
