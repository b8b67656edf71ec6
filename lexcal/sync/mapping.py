"""Translation between local events and the Google Calendar event shape."""

from datetime import datetime, timezone
from typing import Optional

from lexcal.models import CalendarEvent

UNTITLED_EVENT = "Untitled Event"


class InvalidEventTimes(ValueError):
    """Event end is before its start, or a time is unparseable."""


def to_utc_rfc3339(value: str) -> str:
    """Normalize an ISO-8601 instant to UTC with a ``Z`` suffix.

    Naive values are taken as UTC.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise InvalidEventTimes(f"Unparseable time: {value!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _check_order(start: str, end: str) -> None:
    if datetime.fromisoformat(to_utc_rfc3339(end)) < datetime.fromisoformat(to_utc_rfc3339(start)):
        raise InvalidEventTimes(f"Event ends ({end}) before it starts ({start})")


def local_event_to_google(event: CalendarEvent) -> dict:
    """Build the insert body for a local event."""
    _check_order(event.start_time, event.end_time)

    body = {
        "summary": event.title,
        "description": event.description,
        "start": {"dateTime": to_utc_rfc3339(event.start_time), "timeZone": "UTC"},
        "end": {"dateTime": to_utc_rfc3339(event.end_time), "timeZone": "UTC"},
        "location": event.location,
    }
    if event.attendees:
        body["attendees"] = [{"email": email} for email in event.attendees]
    return body


def has_concrete_start(google_event: dict) -> bool:
    """All-day events carry ``start.date`` only and are not imported."""
    return bool((google_event.get("start") or {}).get("dateTime"))


def google_event_to_local(google_event: dict) -> dict:
    """Map a remote event to the fields of a local imported event.

    Start and end keep the provider's string form so a re-fetch compares equal.
    """
    start = google_event["start"]["dateTime"]
    end: Optional[str] = (google_event.get("end") or {}).get("dateTime") or start
    _check_order(start, end)

    attendees = [a["email"] for a in google_event.get("attendees", []) if a.get("email")]

    return {
        "google_event_id": google_event["id"],
        "title": google_event.get("summary") or UNTITLED_EVENT,
        "description": google_event.get("description") or None,
        "start_time": start,
        "end_time": end,
        "location": google_event.get("location") or None,
        "attendees": attendees or None,
        "google_updated_at": google_event.get("updated"),
    }
