"""Google Calendar connection and sync endpoints."""

import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from lexcal.auth import flow
from lexcal.auth.session import CurrentUser, get_current_user
from lexcal.errors import AuthorizationDenied, CalendarSyncError, InvalidCallback
from lexcal.ratelimit import limiter, per_minute_limit
from lexcal.sync.engine import sync_events

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/google-calendar", tags=["google-calendar"])

templates = Jinja2Templates(
    directory=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")
)


class ActionRequest(BaseModel):
    """Body of the action endpoint."""
    action: Optional[str] = None


@router.post("")
@limiter.limit(per_minute_limit)
async def google_calendar_action(
    request: Request,
    body: ActionRequest,
    user: CurrentUser = Depends(get_current_user),
):
    """Dispatch connect / disconnect / check_status / sync_events for the caller."""
    if body.action == "connect":
        return {"authUrl": flow.initiate(user.id)}

    if body.action == "disconnect":
        await flow.disconnect(user.id)
        return {"success": True}

    if body.action == "check_status":
        return await flow.check_status(user.id)

    if body.action == "sync_events":
        result = await sync_events(user.id)
        return {
            "success": True,
            "message": "Events synced successfully",
            **result.model_dump(exclude={"errors"}),
        }

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid action"},
    )


def _result_page(request: Request, heading: str, message: str, payload: dict) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "oauth_result.html",
        {"heading": heading, "message": message, "payload": payload},
    )


@router.get("/callback", response_class=HTMLResponse)
async def google_calendar_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
):
    """Provider redirect target. Always renders a page for the popup window."""
    try:
        await flow.complete_callback(code, state, error)
    except AuthorizationDenied:
        return _result_page(
            request,
            "Authorization Failed",
            f"Error: {error}",
            {"type": "google-auth-error", "error": error},
        )
    except InvalidCallback as e:
        return _result_page(
            request,
            "Invalid Request",
            e.message,
            {"type": "google-auth-error", "error": "invalid_request"},
        )
    except CalendarSyncError as e:
        logger.error(f"Callback error: {e.message}")
        return _result_page(
            request,
            "Authorization Failed",
            "An error occurred during authorization. Please try again.",
            {"type": "google-auth-error", "error": "callback_failed"},
        )
    except Exception as e:
        logger.exception(f"Callback error: {e}")
        return _result_page(
            request,
            "Authorization Failed",
            "An error occurred during authorization. Please try again.",
            {"type": "google-auth-error", "error": "callback_failed"},
        )

    return _result_page(
        request,
        "Authorization Successful!",
        "Your Google Calendar has been connected successfully.",
        {"type": "google-auth-success"},
    )
