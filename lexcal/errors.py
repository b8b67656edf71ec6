"""Error taxonomy for the calendar sync subsystem."""


class CalendarSyncError(Exception):
    """Base class for errors reported to callers as a failed outcome."""

    status_code = 500
    default_message = "Calendar sync failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(CalendarSyncError):
    """No verified caller identity."""

    status_code = 401
    default_message = "Unauthorized"


class ConfigurationError(CalendarSyncError):
    """A required secret or URL is missing. Operator-fixable."""

    status_code = 500
    default_message = "Google Calendar integration is not configured"


class AuthorizationDenied(CalendarSyncError):
    """The provider reported a failure, e.g. the user declined consent."""

    status_code = 400
    default_message = "Authorization was denied"


class InvalidCallback(CalendarSyncError):
    """Malformed provider redirect."""

    status_code = 400
    default_message = "Missing authorization code or state parameter"


class InvalidState(InvalidCallback):
    """The state token is tampered with, expired, or of the wrong purpose."""

    default_message = "Invalid or expired state parameter"


class TokenExchangeFailed(CalendarSyncError):
    status_code = 502
    default_message = "Failed to exchange authorization code for tokens"


class TokenRefreshFailed(CalendarSyncError):
    status_code = 401
    default_message = "Failed to refresh token"


class PersistenceFailed(CalendarSyncError):
    status_code = 500
    default_message = "Failed to save calendar data"


class NotConnected(CalendarSyncError):
    status_code = 400
    default_message = "Google Calendar not connected"


class NoPrimaryCalendar(NotConnected):
    """Connected, but no calendar was flagged primary when the user authorized."""

    default_message = (
        "No primary Google calendar is linked to this account. Please reconnect Google Calendar."
    )


class SyncInProgress(CalendarSyncError):
    """Another sync for the same user holds the lease."""

    status_code = 409
    default_message = "A sync is already in progress"
