"""Local calendar event store."""

import json
import logging
import uuid
from typing import Optional

import aiosqlite

from lexcal.database import get_database, utcnow
from lexcal.errors import PersistenceFailed
from lexcal.models import CalendarEvent

logger = logging.getLogger(__name__)

IMPORTED_EVENT_TYPE = "imported"


def _row_to_event(row: aiosqlite.Row) -> CalendarEvent:
    attendees = json.loads(row["attendees"]) if row["attendees"] else None
    return CalendarEvent(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        description=row["description"],
        start_time=row["start_time"],
        end_time=row["end_time"],
        location=row["location"],
        attendees=attendees,
        google_event_id=row["google_event_id"],
        google_updated_at=row["google_updated_at"],
        is_google_synced=bool(row["is_google_synced"]),
        event_type=row["event_type"],
    )


def _dump_attendees(attendees: Optional[list[str]]) -> Optional[str]:
    return json.dumps(attendees) if attendees else None


async def create_event(
    user_id: str,
    title: str,
    start_time: str,
    end_time: str,
    description: Optional[str] = None,
    location: Optional[str] = None,
    attendees: Optional[list[str]] = None,
    event_type: Optional[str] = None,
) -> CalendarEvent:
    """Create a local (push-eligible) event."""
    event_id = uuid.uuid4().hex
    now = utcnow().isoformat()

    try:
        db = await get_database()
        await db.execute(
            """INSERT INTO calendar_events
               (id, user_id, title, description, start_time, end_time,
                location, attendees, is_google_synced, event_type, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, FALSE, ?, ?)""",
            (event_id, user_id, title, description, start_time, end_time,
             location, _dump_attendees(attendees), event_type, now)
        )
        await db.commit()
    except aiosqlite.Error as e:
        raise PersistenceFailed("Failed to create event") from e

    return await get_event(user_id, event_id)


async def get_event(user_id: str, event_id: str) -> Optional[CalendarEvent]:
    db = await get_database()
    cursor = await db.execute(
        "SELECT * FROM calendar_events WHERE user_id = ? AND id = ?",
        (user_id, event_id)
    )
    row = await cursor.fetchone()
    return _row_to_event(row) if row else None


async def list_unsynced_events(user_id: str) -> list[CalendarEvent]:
    """Local events of the user that have no remote reference yet."""
    db = await get_database()
    cursor = await db.execute(
        """SELECT * FROM calendar_events
           WHERE user_id = ? AND google_event_id IS NULL""",
        (user_id,)
    )
    rows = await cursor.fetchall()
    return [_row_to_event(row) for row in rows]


async def find_by_google_event_id(user_id: str, google_event_id: str) -> Optional[CalendarEvent]:
    db = await get_database()
    cursor = await db.execute(
        """SELECT * FROM calendar_events
           WHERE user_id = ? AND google_event_id = ?""",
        (user_id, google_event_id)
    )
    row = await cursor.fetchone()
    return _row_to_event(row) if row else None


async def attach_remote_reference(user_id: str, event_id: str, google_event_id: str) -> None:
    """Mark a pushed event as synced with its remote id."""
    try:
        db = await get_database()
        await db.execute(
            """UPDATE calendar_events SET
               google_event_id = ?, is_google_synced = TRUE, updated_at = ?
               WHERE user_id = ? AND id = ?""",
            (google_event_id, utcnow().isoformat(), user_id, event_id)
        )
        await db.commit()
    except aiosqlite.Error as e:
        raise PersistenceFailed(f"Failed to attach remote id to event {event_id}") from e


async def insert_imported_event(user_id: str, fields: dict) -> str:
    """Insert an event copied from the remote calendar.

    ``fields`` is the output of ``lexcal.sync.mapping.google_event_to_local``.
    """
    event_id = uuid.uuid4().hex
    now = utcnow().isoformat()

    try:
        db = await get_database()
        await db.execute(
            """INSERT INTO calendar_events
               (id, user_id, title, description, start_time, end_time, location,
                attendees, google_event_id, google_updated_at, is_google_synced,
                event_type, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, TRUE, ?, ?)""",
            (
                event_id,
                user_id,
                fields["title"],
                fields.get("description"),
                fields["start_time"],
                fields["end_time"],
                fields.get("location"),
                _dump_attendees(fields.get("attendees")),
                fields["google_event_id"],
                fields.get("google_updated_at"),
                IMPORTED_EVENT_TYPE,
                now,
            )
        )
        await db.commit()
    except aiosqlite.Error as e:
        raise PersistenceFailed(f"Failed to import event {fields['google_event_id']}") from e

    return event_id


async def update_imported_event(user_id: str, event_id: str, fields: dict) -> None:
    """Overwrite the content of a previously imported event."""
    try:
        db = await get_database()
        await db.execute(
            """UPDATE calendar_events SET
               title = ?, description = ?, start_time = ?, end_time = ?,
               location = ?, attendees = ?, google_updated_at = ?, updated_at = ?
               WHERE user_id = ? AND id = ?""",
            (
                fields["title"],
                fields.get("description"),
                fields["start_time"],
                fields["end_time"],
                fields.get("location"),
                _dump_attendees(fields.get("attendees")),
                fields.get("google_updated_at"),
                utcnow().isoformat(),
                user_id,
                event_id,
            )
        )
        await db.commit()
    except aiosqlite.Error as e:
        raise PersistenceFailed(f"Failed to update imported event {event_id}") from e
