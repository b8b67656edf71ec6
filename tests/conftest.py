"""Pytest configuration and fixtures."""

import os
import threading
from datetime import timedelta
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

# Set test environment variables before imports
os.environ["DATABASE_PATH"] = ":memory:"
os.environ["ENCRYPTION_KEY_FILE"] = "/tmp/lexcal_test_missing.key"
os.environ["PUBLIC_URL"] = "http://localhost:3000"
os.environ["GOOGLE_CLIENT_ID"] = "test-client.apps.googleusercontent.com"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["AUTH_JWT_SECRET"] = "test-auth-secret"

USER_ID = "6f1c2a4e-0000-4000-8000-000000000001"
OTHER_USER_ID = "6f1c2a4e-0000-4000-8000-000000000002"


@pytest.fixture(autouse=True)
def test_encryption_key():
    """Give every test a fresh token cipher."""
    from lexcal.encryption import generate_encryption_key, init_cipher

    key = generate_encryption_key()
    init_cipher(key)
    yield key


@pytest.fixture
def override_settings(monkeypatch):
    """Set environment-backed settings for one test."""
    from lexcal.config import get_settings

    def _override(**values):
        for name, value in values.items():
            monkeypatch.setenv(name.upper(), str(value))
        get_settings.cache_clear()
        return get_settings()

    yield _override
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def test_db():
    """Create a test database."""
    from lexcal.database import close_database, get_database
    import lexcal.database as db_module

    # Reset the global connection
    db_module._db_connection = None

    db = await get_database()

    yield db

    await close_database()
    db_module._db_connection = None


@pytest_asyncio.fixture
async def async_client(test_db):
    """Create an async test client bound to the test database."""
    from lexcal.main import app
    from lexcal.ratelimit import limiter

    limiter.reset()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def make_access_token(user_id: str = USER_ID, expires_in: int = 3600, secret: str = "test-auth-secret") -> str:
    """Mint a bearer token the way the external auth provider does."""
    from lexcal.database import utcnow

    payload = {
        "sub": user_id,
        "email": "attorney@example.com",
        "aud": "authenticated",
        "exp": utcnow() + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = USER_ID) -> dict:
        return {"Authorization": f"Bearer {make_access_token(user_id)}"}
    return _headers


class FakeCalendarClient:
    """In-memory stand-in for GoogleCalendarClient."""

    def __init__(self, calls: Optional[list] = None):
        self.calls = calls if calls is not None else []
        self.calendars = [
            {"id": "work@example.com", "summary": "Work"},
            {"id": "attorney@example.com", "summary": "Attorney", "primary": True},
        ]
        self.remote_events: list[dict] = []
        self.created: list[dict] = []
        self.reject_summaries: set[str] = set()
        self.fail_list = False
        self.tokens_seen: list[str] = []
        self._lock = threading.Lock()
        self._next_id = 0

    def bind(self, access_token: str) -> "FakeCalendarClient":
        self.tokens_seen.append(access_token)
        return self

    def find_primary_calendar_id(self) -> Optional[str]:
        self.calls.append("calendar_list")
        primary = next((c for c in self.calendars if c.get("primary")), None)
        return primary["id"] if primary else None

    def create_event(self, calendar_id: str, event_data: dict) -> dict:
        with self._lock:
            self.calls.append("create")
            if event_data["summary"] in self.reject_summaries:
                raise RuntimeError("HttpError 400: provider rejected event")
            self._next_id += 1
            created = dict(event_data, id=f"gcal-{self._next_id}")
            self.created.append(created)
            self.remote_events.append(created)
            return created

    def list_events(self, calendar_id: str, time_min) -> list[dict]:
        self.calls.append("list")
        if self.fail_list:
            raise TimeoutError("timed out")
        return [dict(e) for e in self.remote_events]


@pytest.fixture
def fake_calendar(monkeypatch):
    """Replace the Calendar API client in the engine and auth flow."""
    fake = FakeCalendarClient()
    monkeypatch.setattr("lexcal.sync.engine.GoogleCalendarClient", fake.bind)
    monkeypatch.setattr("lexcal.auth.flow.GoogleCalendarClient", fake.bind)
    return fake


class FakeResponse:
    def __init__(self, status_code: int, payload: Optional[dict] = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None and self.text:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload or {}


class FakeTokenEndpoint:
    """Scripted replacement for httpx.AsyncClient against the token endpoint."""

    def __init__(self, *responses: FakeResponse):
        self.responses = list(responses)
        self.requests: list[dict] = []

    def __call__(self, **_kwargs):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_args):
        return None

    async def post(self, url, data=None, **_kwargs):
        self.requests.append({"url": url, "data": dict(data or {})})
        return self.responses.pop(0)


@pytest.fixture
def token_endpoint(monkeypatch):
    """Install a scripted token endpoint; call with the responses to return."""
    def _install(*responses: FakeResponse) -> FakeTokenEndpoint:
        endpoint = FakeTokenEndpoint(*responses)
        monkeypatch.setattr("lexcal.auth.google.httpx.AsyncClient", endpoint)
        return endpoint
    return _install
