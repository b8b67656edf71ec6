"""Main FastAPI application entry point."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from lexcal.api import api_router
from lexcal.config import get_cors_origins, get_settings
from lexcal.database import close_database, get_database
from lexcal.errors import CalendarSyncError, ConfigurationError
from lexcal.ratelimit import limiter

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting Google Calendar sync service...")
    logger.info(f"Public URL: {settings.public_url}")
    logger.info(f"Database: {settings.database_path}")

    if not settings.google_client_id or not settings.google_client_secret:
        logger.warning("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set; connect and sync will fail")

    await get_database()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    await close_database()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Google Calendar Sync",
    description="Google Calendar connection and two-way event sync for the practice-management app",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

settings = get_settings()
allowed_origins = get_cors_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    # Credentialed requests cannot use a wildcard origin
    allow_credentials="*" not in allowed_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    try:
        db = await get_database()
        await db.execute("SELECT 1")
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "error": str(e)},
        )


app.include_router(api_router)


@app.exception_handler(CalendarSyncError)
async def calendar_sync_error_handler(request: Request, exc: CalendarSyncError):
    """Render domain errors as {"error": message}."""
    if isinstance(exc, ConfigurationError):
        # Operator problem; keep the detail out of the response
        logger.error(f"Configuration error: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": ConfigurationError.default_message},
        )

    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


@app.get("/favicon.ico")
async def favicon():
    """Return empty response for favicon."""
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lexcal.main:app",
        host="0.0.0.0",
        port=3000,
        log_level=settings.log_level.lower(),
        reload=False,
    )
