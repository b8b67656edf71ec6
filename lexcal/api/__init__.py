"""API endpoints module."""

from fastapi import APIRouter

from lexcal.api.google_calendar import router as google_calendar_router

api_router = APIRouter(prefix="/api")

api_router.include_router(google_calendar_router)

__all__ = ["api_router"]
