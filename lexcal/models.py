"""Domain models shared by the auth flow, stores and sync engine."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class CalendarCredential(BaseModel):
    """Per-user Google Calendar credential record (tokens decrypted)."""
    user_id: str
    google_calendar_id: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    is_connected: bool = False
    updated_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        """An unset expiry is never considered expired."""
        return self.token_expires_at is not None and self.token_expires_at <= now


class CalendarEvent(BaseModel):
    """Row of the local event store."""
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    start_time: str
    end_time: str
    location: Optional[str] = None
    attendees: Optional[list[str]] = None
    google_event_id: Optional[str] = None
    google_updated_at: Optional[str] = None
    is_google_synced: bool = False
    event_type: Optional[str] = None


class SyncResult(BaseModel):
    """Outcome of one sync_events invocation."""
    pushed: int = 0
    pulled: int = 0
    updated: int = 0
    push_failed: int = 0
    pull_failed: int = 0
    skipped: int = 0
    token_refreshed: bool = False
    errors: list[str] = []
