"""Application configuration management."""

import hashlib
import os
import re
from functools import lru_cache
from typing import Optional
from urllib.parse import urljoin

from pydantic_settings import BaseSettings

from lexcal.errors import ConfigurationError

CALLBACK_PATH = "/api/google-calendar/callback"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_path: str = "/data/lexcal.db"

    # Encryption
    encryption_key_file: str = "/secrets/encryption.key"

    # Server
    public_url: str = "http://localhost:3000"
    log_level: str = "info"
    # Comma separated browser origins allowed to call the API; "*" allows any
    cors_allowed_origins: str = "*"

    # Google OAuth client
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None

    # External auth provider (JWT bearer tokens)
    auth_jwt_secret: Optional[str] = None
    auth_jwt_audience: Optional[str] = None

    # OAuth state tokens
    oauth_state_secret: Optional[str] = None  # Derived from client secret if not set
    oauth_state_ttl_minutes: int = 10

    # Rate limiting
    rate_limit_per_minute: int = 60

    # Sync settings
    sync_pull_window_days: int = 30
    sync_concurrency: int = 5
    sync_lease_seconds: int = 300
    propagate_remote_updates: bool = False

    # Outbound HTTP
    http_timeout_seconds: float = 30.0
    http_max_retries: int = 3
    google_api_retries: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_oauth_client() -> tuple[str, str]:
    """Return the registered OAuth client id and secret."""
    settings = get_settings()
    if not settings.google_client_id or not settings.google_client_secret:
        raise ConfigurationError("Google OAuth credentials not configured")
    return settings.google_client_id, settings.google_client_secret


def get_callback_url() -> str:
    """Build the fixed OAuth redirect URI."""
    settings = get_settings()
    if not settings.public_url:
        raise ConfigurationError("PUBLIC_URL is not configured")
    return urljoin(settings.public_url, CALLBACK_PATH)


def get_encryption_key() -> bytes:
    """Load encryption key from file."""
    settings = get_settings()
    key_file = settings.encryption_key_file

    if not os.path.exists(key_file):
        raise ConfigurationError(f"Encryption key file not found at {key_file}")

    with open(key_file, "rb") as f:
        key = f.read()
        # Trailing newlines from text editors are not key material
        while key and key[-1:] in (b"\n", b"\r"):
            key = key[:-1]

    if len(key) < 32:
        raise ConfigurationError("Invalid encryption key: must be at least 32 bytes")

    return key


def get_state_secret() -> str:
    """Get the OAuth state signing secret, derived from the client secret if not set."""
    settings = get_settings()
    if settings.oauth_state_secret:
        return settings.oauth_state_secret

    _, client_secret = get_oauth_client()
    return hashlib.sha256(client_secret.encode("utf-8") + b"oauth_state").hexdigest()


def get_cors_origins() -> list[str]:
    """Parse the comma/newline/semicolon separated CORS origin list."""
    raw = get_settings().cors_allowed_origins
    if not raw:
        return []

    origins = []
    for token in re.split(r"[,\n;]+", raw):
        origin = token.strip().rstrip("/")
        if origin and origin not in origins:
            origins.append(origin)
    return origins
