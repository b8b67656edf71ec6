"""Per-user Google Calendar credential store."""

import logging
from datetime import datetime, timedelta
from typing import Optional

import aiosqlite

from lexcal.database import get_database, parse_timestamp, utcnow
from lexcal.encryption import open_token, seal_token
from lexcal.errors import PersistenceFailed
from lexcal.models import CalendarCredential

logger = logging.getLogger(__name__)


def expiry_from_now(expires_in: Optional[int], now: Optional[datetime] = None) -> Optional[datetime]:
    """Compute the token expiry instant from an expires_in value in seconds."""
    if expires_in is None:
        return None
    return (now or utcnow()) + timedelta(seconds=int(expires_in))


async def get_credential(user_id: str) -> Optional[CalendarCredential]:
    """Read the user's credential row, or None if absent."""
    db = await get_database()
    cursor = await db.execute(
        "SELECT * FROM calendar_credentials WHERE user_id = ?", (user_id,)
    )
    row = await cursor.fetchone()
    if not row:
        return None

    return CalendarCredential(
        user_id=row["user_id"],
        google_calendar_id=row["google_calendar_id"],
        access_token=open_token(row["access_token_encrypted"]),
        refresh_token=open_token(row["refresh_token_encrypted"]),
        token_expires_at=parse_timestamp(row["token_expires_at"]),
        is_connected=bool(row["is_connected"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


async def upsert_credential(
    user_id: str,
    google_calendar_id: Optional[str],
    access_token: str,
    refresh_token: Optional[str],
    token_expires_at: Optional[datetime],
) -> None:
    """Create or overwrite the user's credential and mark it connected.

    A missing ``refresh_token`` keeps the one already stored.
    """
    now = utcnow().isoformat()
    expiry = token_expires_at.isoformat() if token_expires_at else None

    try:
        db = await get_database()
        await db.execute(
            """INSERT INTO calendar_credentials
               (user_id, google_calendar_id, access_token_encrypted,
                refresh_token_encrypted, token_expires_at, is_connected, updated_at)
               VALUES (?, ?, ?, ?, ?, TRUE, ?)
               ON CONFLICT(user_id) DO UPDATE SET
               google_calendar_id = excluded.google_calendar_id,
               access_token_encrypted = excluded.access_token_encrypted,
               refresh_token_encrypted = COALESCE(
                   excluded.refresh_token_encrypted,
                   calendar_credentials.refresh_token_encrypted
               ),
               token_expires_at = excluded.token_expires_at,
               is_connected = TRUE,
               updated_at = excluded.updated_at""",
            (
                user_id,
                google_calendar_id,
                seal_token(access_token),
                seal_token(refresh_token),
                expiry,
                now,
            )
        )
        await db.commit()
    except aiosqlite.Error as e:
        logger.error(f"Failed to save credential for user {user_id}: {e}")
        raise PersistenceFailed("Failed to save tokens") from e


async def update_access_token(
    user_id: str,
    access_token: str,
    token_expires_at: Optional[datetime],
    refresh_token: Optional[str] = None,
) -> None:
    """Store a refreshed access token; the refresh token is kept unless a new one is given."""
    now = utcnow().isoformat()
    expiry = token_expires_at.isoformat() if token_expires_at else None

    try:
        db = await get_database()
        if refresh_token:
            await db.execute(
                """UPDATE calendar_credentials SET
                   access_token_encrypted = ?, refresh_token_encrypted = ?,
                   token_expires_at = ?, updated_at = ?
                   WHERE user_id = ?""",
                (seal_token(access_token), seal_token(refresh_token), expiry, now, user_id)
            )
        else:
            await db.execute(
                """UPDATE calendar_credentials SET
                   access_token_encrypted = ?, token_expires_at = ?, updated_at = ?
                   WHERE user_id = ?""",
                (seal_token(access_token), expiry, now, user_id)
            )
        await db.commit()
    except aiosqlite.Error as e:
        logger.error(f"Failed to store refreshed token for user {user_id}: {e}")
        raise PersistenceFailed("Failed to save refreshed token") from e


async def clear_credential(user_id: str) -> None:
    """Null every token field and mark the user disconnected. No-op if absent."""
    try:
        db = await get_database()
        await db.execute(
            """UPDATE calendar_credentials SET
               is_connected = FALSE,
               access_token_encrypted = NULL,
               refresh_token_encrypted = NULL,
               token_expires_at = NULL,
               google_calendar_id = NULL,
               updated_at = ?
               WHERE user_id = ?""",
            (utcnow().isoformat(), user_id)
        )
        await db.commit()
    except aiosqlite.Error as e:
        logger.error(f"Failed to disconnect user {user_id}: {e}")
        raise PersistenceFailed("Failed to disconnect") from e


async def is_connected(user_id: str) -> bool:
    """Read the connection flag; an absent row is not connected."""
    db = await get_database()
    cursor = await db.execute(
        "SELECT is_connected FROM calendar_credentials WHERE user_id = ?", (user_id,)
    )
    row = await cursor.fetchone()
    return bool(row and row["is_connected"])
