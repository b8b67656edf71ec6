"""Database connection and schema management."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import aiosqlite

from lexcal.config import get_settings

logger = logging.getLogger(__name__)

# Global database connection
_db_connection: Optional[aiosqlite.Connection] = None
_db_lock = asyncio.Lock()


SCHEMA = """
-- Per-user Google Calendar credential (tokens encrypted at rest)
CREATE TABLE IF NOT EXISTS calendar_credentials (
    user_id TEXT PRIMARY KEY,
    google_calendar_id TEXT,
    access_token_encrypted TEXT,
    refresh_token_encrypted TEXT,
    token_expires_at TIMESTAMP,
    is_connected BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP
);

-- Local event store
CREATE TABLE IF NOT EXISTS calendar_events (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    location TEXT,
    attendees TEXT,
    google_event_id TEXT,
    google_updated_at TEXT,
    is_google_synced BOOLEAN NOT NULL DEFAULT FALSE,
    event_type TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP,
    CHECK (google_event_id IS NULL OR is_google_synced),
    UNIQUE(user_id, google_event_id)
);

CREATE INDEX IF NOT EXISTS idx_calendar_events_unsynced
    ON calendar_events(user_id, google_event_id);

-- Per-user sync lease
CREATE TABLE IF NOT EXISTS sync_leases (
    user_id TEXT PRIMARY KEY,
    lease_token TEXT NOT NULL,
    acquired_at TIMESTAMP NOT NULL,
    expires_at TIMESTAMP NOT NULL
);

-- Audit log
CREATE TABLE IF NOT EXISTS sync_log (
    id INTEGER PRIMARY KEY,
    user_id TEXT NOT NULL,
    action TEXT NOT NULL,
    status TEXT NOT NULL,
    details TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_sync_log_user ON sync_log(user_id, created_at);
"""


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO timestamp; naive values are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def get_database() -> aiosqlite.Connection:
    """Get the database connection, creating it if necessary."""
    global _db_connection

    async with _db_lock:
        if _db_connection is None:
            settings = get_settings()
            _db_connection = await aiosqlite.connect(settings.database_path)
            _db_connection.row_factory = aiosqlite.Row
            if settings.database_path != ":memory:":
                await _db_connection.execute("PRAGMA journal_mode = WAL")
            await init_schema(_db_connection)
        return _db_connection


async def init_schema(db: aiosqlite.Connection) -> None:
    """Initialize database schema."""
    await db.executescript(SCHEMA)
    await db.commit()
    logger.info("Database schema initialized")


async def close_database() -> None:
    """Close the database connection."""
    global _db_connection

    async with _db_lock:
        if _db_connection is not None:
            await _db_connection.close()
            _db_connection = None
            logger.info("Database connection closed")


async def log_sync_action(user_id: str, action: str, status: str, details: dict) -> None:
    """Append an audit row. Audit failures never fail the caller."""
    try:
        db = await get_database()
        await db.execute(
            """INSERT INTO sync_log (user_id, action, status, details)
               VALUES (?, ?, ?, ?)""",
            (user_id, action, status, json.dumps(details))
        )
        await db.commit()
    except aiosqlite.Error as e:
        logger.warning(f"Could not write sync log for user {user_id}: {e}")
