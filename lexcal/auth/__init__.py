"""Authentication and Google authorization module."""

from lexcal.auth.session import CurrentUser, get_current_user

__all__ = [
    "CurrentUser",
    "get_current_user",
]
