"""Two-way sync between the local event store and the user's Google calendar."""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from lexcal.auth.google import TokenEndpointError, refresh_access_token
from lexcal.config import get_settings
from lexcal.credentials import expiry_from_now, get_credential, update_access_token
from lexcal.database import log_sync_action, utcnow
from lexcal.errors import CalendarSyncError, NoPrimaryCalendar, NotConnected, TokenRefreshFailed
from lexcal.events import (
    IMPORTED_EVENT_TYPE,
    attach_remote_reference,
    find_by_google_event_id,
    insert_imported_event,
    list_unsynced_events,
    update_imported_event,
)
from lexcal.models import CalendarCredential, CalendarEvent, SyncResult
from lexcal.sync.google_calendar import GoogleCalendarClient, pull_window_start
from lexcal.sync.lease import sync_lease
from lexcal.sync.mapping import (
    InvalidEventTimes,
    google_event_to_local,
    has_concrete_start,
    local_event_to_google,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Per-item outcomes
PUSHED = "pushed"
PULLED = "pulled"
UPDATED = "updated"
SKIPPED = "skipped"
FAILED = "failed"


async def run_bounded(items: Iterable[T], worker: Callable[[T], Awaitable[str]]) -> list[str]:
    """Run ``worker`` over ``items`` with at most ``sync_concurrency`` in flight."""
    semaphore = asyncio.Semaphore(max(get_settings().sync_concurrency, 1))

    async def _guarded(item: T) -> str:
        async with semaphore:
            return await worker(item)

    return list(await asyncio.gather(*(_guarded(item) for item in items)))


async def load_credential(user_id: str) -> CalendarCredential:
    """Load the user's connected credential or abort with NotConnected."""
    credential = await get_credential(user_id)
    if not credential or not credential.is_connected:
        raise NotConnected()

    if not credential.google_calendar_id:
        raise NoPrimaryCalendar()

    return credential


async def ensure_fresh_token(credential: CalendarCredential, now: Optional[datetime] = None) -> Optional[str]:
    """
    Return a usable access token, refreshing it once if expired.

    Returns the new token when a refresh happened, None when the stored one is
    still valid.
    """
    now = now or utcnow()
    if credential.access_token and not credential.is_expired(now):
        return None

    if not credential.refresh_token:
        raise TokenRefreshFailed("No refresh token stored. Please reconnect Google Calendar.")

    logger.info(f"Refreshing Google token for user {credential.user_id}")
    try:
        tokens = await refresh_access_token(credential.refresh_token)
    except TokenEndpointError as e:
        raise TokenRefreshFailed() from e

    access_token = tokens.get("access_token")
    if not access_token:
        raise TokenRefreshFailed("Token refresh returned no access token")

    await update_access_token(
        user_id=credential.user_id,
        access_token=access_token,
        token_expires_at=expiry_from_now(tokens.get("expires_in"), now),
        refresh_token=tokens.get("refresh_token"),
    )
    return access_token


async def push_local_events(
    client: GoogleCalendarClient,
    user_id: str,
    calendar_id: str,
    result: SyncResult,
    heartbeat: Optional[Callable[[], Awaitable[None]]] = None,
) -> None:
    """Create every not-yet-pushed local event on the remote calendar.

    ``heartbeat`` runs before each create; an error it raises aborts the push.
    """
    events = await list_unsynced_events(user_id)
    if not events:
        return

    logger.info(f"Pushing {len(events)} local events for user {user_id}")

    async def _push_one(event: CalendarEvent) -> str:
        if heartbeat:
            await heartbeat()
        try:
            body = local_event_to_google(event)
            created = await asyncio.to_thread(client.create_event, calendar_id, body)
            await attach_remote_reference(user_id, event.id, created["id"])
            return PUSHED
        except Exception as e:
            logger.error(f"Failed to push event {event.id}: {e}")
            result.errors.append(f"push {event.id}: {e}")
            return FAILED

    outcomes = await run_bounded(events, _push_one)
    result.pushed += outcomes.count(PUSHED)
    result.push_failed += outcomes.count(FAILED)


def _remote_is_newer(remote_updated: Optional[str], local_updated: Optional[str]) -> bool:
    if not remote_updated:
        return False
    if not local_updated:
        return True
    return datetime.fromisoformat(remote_updated) > datetime.fromisoformat(local_updated)


async def pull_remote_events(
    client: GoogleCalendarClient,
    user_id: str,
    calendar_id: str,
    result: SyncResult,
    now: Optional[datetime] = None,
) -> None:
    """Import remote events from the pull window that are not stored locally yet."""
    propagate_updates = get_settings().propagate_remote_updates
    time_min = pull_window_start(now or utcnow())

    try:
        remote_events = await asyncio.to_thread(client.list_events, calendar_id, time_min)
    except Exception as e:
        logger.error(f"Failed to list remote events for user {user_id}: {e}")
        result.errors.append(f"list: {e}")
        return

    async def _pull_one(remote: dict) -> str:
        if not remote.get("id") or not has_concrete_start(remote):
            return SKIPPED
        try:
            existing = await find_by_google_event_id(user_id, remote["id"])
            if existing:
                if (
                    propagate_updates
                    and existing.event_type == IMPORTED_EVENT_TYPE
                    and _remote_is_newer(remote.get("updated"), existing.google_updated_at)
                ):
                    await update_imported_event(user_id, existing.id, google_event_to_local(remote))
                    return UPDATED
                return SKIPPED

            await insert_imported_event(user_id, google_event_to_local(remote))
            return PULLED
        except InvalidEventTimes as e:
            logger.warning(f"Skipping remote event {remote['id']}: {e}")
            return SKIPPED
        except Exception as e:
            logger.error(f"Failed to import remote event {remote['id']}: {e}")
            result.errors.append(f"pull {remote['id']}: {e}")
            return FAILED

    outcomes = await run_bounded(remote_events, _pull_one)
    result.pulled += outcomes.count(PULLED)
    result.updated += outcomes.count(UPDATED)
    result.skipped += outcomes.count(SKIPPED)
    result.pull_failed += outcomes.count(FAILED)


async def sync_events(user_id: str) -> SyncResult:
    """
    Reconcile local and remote events for one user.

    Credential load and token refresh failures abort the call. Individual
    push/pull failures are logged and counted; rows updated before a failure
    stay updated.
    """
    result = SyncResult()

    try:
        credential = await load_credential(user_id)
        refreshed = await ensure_fresh_token(credential)
        result.token_refreshed = refreshed is not None
        access_token = refreshed or credential.access_token
        calendar_id = credential.google_calendar_id

        async with sync_lease(user_id) as lease:
            client = GoogleCalendarClient(access_token)
            await push_local_events(client, user_id, calendar_id, result, heartbeat=lease.renew)
            await lease.renew()
            await pull_remote_events(client, user_id, calendar_id, result)

    except CalendarSyncError as e:
        logger.warning(f"Sync aborted for user {user_id}: {e.message}")
        await log_sync_action(user_id, "sync", "failure", {"error": e.message})
        raise

    logger.info(
        f"Sync completed for user {user_id}: {result.pushed} pushed, "
        f"{result.pulled} pulled, {result.push_failed + result.pull_failed} failed"
    )
    await log_sync_action(
        user_id,
        "sync",
        "success",
        result.model_dump(exclude={"errors"}) | {"failed_items": result.errors},
    )
    return result
