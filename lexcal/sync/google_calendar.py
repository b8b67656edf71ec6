"""Google Calendar API wrapper."""

import logging
from datetime import datetime, timedelta
from typing import Optional

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build

from lexcal.config import get_settings

logger = logging.getLogger(__name__)


class GoogleCalendarClient:
    """Wrapper around Google Calendar API.

    Calls are blocking. Each request executes on a fresh authorized
    ``httplib2.Http`` so one client may be shared across worker threads.
    """

    def __init__(self, access_token: str):
        """Initialize with access token."""
        self.settings = get_settings()
        self.credentials = Credentials(token=access_token)
        self.service = build(
            "calendar",
            "v3",
            http=self._authorized_http(),
            cache_discovery=False,
        )

    def _authorized_http(self) -> AuthorizedHttp:
        return AuthorizedHttp(
            self.credentials,
            http=httplib2.Http(timeout=self.settings.http_timeout_seconds),
        )

    def _execute(self, request) -> dict:
        # num_retries backs off on 429 and 5xx responses
        return request.execute(
            http=self._authorized_http(),
            num_retries=self.settings.google_api_retries,
        )

    def list_calendars(self) -> list[dict]:
        """List all calendars the user has access to."""
        result = self._execute(self.service.calendarList().list())
        return result.get("items", [])

    def find_primary_calendar_id(self) -> Optional[str]:
        """Return the id of the calendar flagged primary, if any."""
        primary = next((c for c in self.list_calendars() if c.get("primary")), None)
        return primary["id"] if primary else None

    def create_event(self, calendar_id: str, event_data: dict) -> dict:
        """Create an event on a calendar."""
        return self._execute(
            self.service.events().insert(calendarId=calendar_id, body=event_data)
        )

    def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        single_events: bool = True,
        order_by: Optional[str] = "startTime",
        max_results: int = 2500,
    ) -> list[dict]:
        """List events starting from ``time_min``, following every page."""
        request_params = {
            "calendarId": calendar_id,
            "timeMin": time_min.isoformat().replace("+00:00", "Z"),
            "singleEvents": single_events,
            "maxResults": max_results,
        }
        if order_by:
            request_params["orderBy"] = order_by

        all_events = []
        page_token = None

        while True:
            if page_token:
                request_params["pageToken"] = page_token

            result = self._execute(self.service.events().list(**request_params))
            all_events.extend(result.get("items", []))

            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return all_events


def pull_window_start(now: datetime) -> datetime:
    """Start of the import window: the configured number of days before ``now``."""
    return now - timedelta(days=get_settings().sync_pull_window_days)
