"""Per-user sync lease.

Sync invocations are independent requests, so mutual exclusion is a row in
``sync_leases`` with an expiry rather than an in-process lock. A lease left
behind by a crashed request lapses after ``sync_lease_seconds``; a running sync
renews it before each remote write and between stages.
"""

import logging
import secrets
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, Optional

import aiosqlite

from lexcal.config import get_settings
from lexcal.database import get_database, utcnow
from lexcal.errors import SyncInProgress

logger = logging.getLogger(__name__)


async def acquire_sync_lease(user_id: str, ttl_seconds: Optional[int] = None) -> Optional[str]:
    """
    Acquire the sync lease for a user.

    Returns the lease token if acquired, None if a live lease is held elsewhere.
    """
    ttl = ttl_seconds or get_settings().sync_lease_seconds
    db = await get_database()
    now = utcnow()

    # Expired leases are up for grabs
    await db.execute(
        "DELETE FROM sync_leases WHERE user_id = ? AND expires_at < ?",
        (user_id, now.isoformat())
    )
    await db.commit()

    lease_token = secrets.token_urlsafe(16)
    try:
        await db.execute(
            """INSERT INTO sync_leases (user_id, lease_token, acquired_at, expires_at)
               VALUES (?, ?, ?, ?)""",
            (user_id, lease_token, now.isoformat(), (now + timedelta(seconds=ttl)).isoformat())
        )
        await db.commit()
    except aiosqlite.IntegrityError:
        return None

    return lease_token


async def renew_sync_lease(user_id: str, lease_token: str, ttl_seconds: Optional[int] = None) -> bool:
    """Push the expiry of our lease forward. Returns False if the lease is no longer ours."""
    ttl = ttl_seconds or get_settings().sync_lease_seconds
    db = await get_database()
    cursor = await db.execute(
        """UPDATE sync_leases SET expires_at = ?
           WHERE user_id = ? AND lease_token = ?""",
        ((utcnow() + timedelta(seconds=ttl)).isoformat(), user_id, lease_token)
    )
    await db.commit()
    return cursor.rowcount == 1


async def release_sync_lease(user_id: str, lease_token: str) -> None:
    """Release a lease, only if it is still ours."""
    db = await get_database()
    await db.execute(
        "DELETE FROM sync_leases WHERE user_id = ? AND lease_token = ?",
        (user_id, lease_token)
    )
    await db.commit()


class SyncLease:
    """A held lease. Long stages call ``renew`` so the lease outlives them."""

    def __init__(self, user_id: str, lease_token: str):
        self.user_id = user_id
        self.lease_token = lease_token

    async def renew(self) -> None:
        if not await renew_sync_lease(self.user_id, self.lease_token):
            logger.warning(f"Sync lease for user {self.user_id} was lost")
            raise SyncInProgress("Sync lease expired while syncing")


@asynccontextmanager
async def sync_lease(user_id: str) -> AsyncIterator[SyncLease]:
    """Hold the user's sync lease for the duration of the block."""
    lease_token = await acquire_sync_lease(user_id)
    if lease_token is None:
        logger.info(f"Sync already in progress for user {user_id}, skipping")
        raise SyncInProgress()

    try:
        yield SyncLease(user_id, lease_token)
    finally:
        try:
            await release_sync_lease(user_id, lease_token)
        except aiosqlite.Error as e:
            logger.warning(f"Could not release sync lease for user {user_id}: {e}")
