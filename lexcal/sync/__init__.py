"""Sync engine module."""

from lexcal.sync.engine import sync_events

__all__ = [
    "sync_events",
]
