"""Request rate limiting."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from lexcal.config import get_settings

limiter = Limiter(key_func=get_remote_address)


def per_minute_limit() -> str:
    """Configured per-client limit for the calendar action endpoint."""
    return f"{get_settings().rate_limit_per_minute}/minute"
