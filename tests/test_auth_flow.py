"""Tests for the Google Calendar authorization flow."""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest

from lexcal.database import get_database
from tests.conftest import FakeResponse, USER_ID


async def _credential_rows() -> int:
    db = await get_database()
    cursor = await db.execute("SELECT COUNT(*) FROM calendar_credentials")
    return (await cursor.fetchone())[0]


# ---------------------------------------------------------------------------
# initiate
# ---------------------------------------------------------------------------


class TestInitiate:
    def test_builds_consent_url_with_signed_state(self):
        from lexcal.auth.flow import initiate
        from lexcal.auth.state import verify_oauth_state

        url = initiate(USER_ID)
        params = {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}

        assert params["redirect_uri"] == "http://localhost:3000/api/google-calendar/callback"
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"
        assert verify_oauth_state(params["state"]) == USER_ID

    def test_requires_identity(self):
        from lexcal.auth.flow import initiate
        from lexcal.errors import Unauthenticated

        with pytest.raises(Unauthenticated):
            initiate(None)

    def test_missing_client_id_is_configuration_error(self, override_settings):
        from lexcal.auth.flow import initiate
        from lexcal.errors import ConfigurationError

        override_settings(google_client_id="")
        with pytest.raises(ConfigurationError):
            initiate(USER_ID)


# ---------------------------------------------------------------------------
# complete_callback
# ---------------------------------------------------------------------------


class TestCompleteCallback:
    @pytest.mark.asyncio
    async def test_denial_writes_nothing(self, test_db, token_endpoint):
        from lexcal.auth.flow import complete_callback
        from lexcal.errors import AuthorizationDenied

        endpoint = token_endpoint()

        with pytest.raises(AuthorizationDenied):
            await complete_callback(code=None, state=None, error="access_denied")

        assert endpoint.requests == []
        assert await _credential_rows() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,state", [(None, "s"), ("c", None), (None, None)])
    async def test_missing_code_or_state(self, test_db, code, state):
        from lexcal.auth.flow import complete_callback
        from lexcal.errors import InvalidCallback

        with pytest.raises(InvalidCallback):
            await complete_callback(code=code, state=state)
        assert await _credential_rows() == 0

    @pytest.mark.asyncio
    async def test_unsigned_state_rejected_before_exchange(self, test_db, token_endpoint):
        from lexcal.auth.flow import complete_callback
        from lexcal.errors import InvalidState

        endpoint = token_endpoint()

        with pytest.raises(InvalidState):
            await complete_callback(code="code", state=USER_ID)
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_success_stores_credential(self, test_db, token_endpoint, fake_calendar):
        from lexcal.auth.flow import complete_callback
        from lexcal.auth.state import create_oauth_state
        from lexcal.credentials import get_credential
        from lexcal.database import utcnow

        endpoint = token_endpoint(
            FakeResponse(200, {"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3599})
        )

        user_id = await complete_callback(code="auth-code", state=create_oauth_state(USER_ID))

        assert user_id == USER_ID
        assert endpoint.requests[0]["data"]["redirect_uri"] == "http://localhost:3000/api/google-calendar/callback"
        assert fake_calendar.tokens_seen == ["access-1"]

        credential = await get_credential(USER_ID)
        assert credential.is_connected is True
        assert credential.google_calendar_id == "attorney@example.com"
        assert credential.access_token == "access-1"
        assert credential.refresh_token == "refresh-1"
        remaining = (credential.token_expires_at - utcnow()).total_seconds()
        assert 3500 < remaining <= 3599

    @pytest.mark.asyncio
    async def test_no_primary_calendar_leaves_calendar_id_null(self, test_db, token_endpoint, fake_calendar):
        from lexcal.auth.flow import complete_callback
        from lexcal.auth.state import create_oauth_state
        from lexcal.credentials import get_credential

        fake_calendar.calendars = [{"id": "shared@example.com"}]
        token_endpoint(FakeResponse(200, {"access_token": "a", "refresh_token": "r", "expires_in": 3600}))

        await complete_callback(code="code", state=create_oauth_state(USER_ID))

        credential = await get_credential(USER_ID)
        assert credential.is_connected is True
        assert credential.google_calendar_id is None

    @pytest.mark.asyncio
    async def test_calendar_lookup_failure_still_connects(self, test_db, token_endpoint, mocker):
        from lexcal.auth.flow import complete_callback
        from lexcal.auth.state import create_oauth_state
        from lexcal.credentials import get_credential

        client = mocker.MagicMock()
        client.find_primary_calendar_id.side_effect = RuntimeError("HttpError 403")
        mocker.patch("lexcal.auth.flow.GoogleCalendarClient", return_value=client)
        token_endpoint(FakeResponse(200, {"access_token": "a", "refresh_token": "r", "expires_in": 3600}))

        await complete_callback(code="code", state=create_oauth_state(USER_ID))

        credential = await get_credential(USER_ID)
        assert credential.is_connected is True
        assert credential.google_calendar_id is None
        client.find_primary_calendar_id.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_exchange_failure(self, test_db, token_endpoint, fake_calendar):
        from lexcal.auth.flow import complete_callback
        from lexcal.auth.state import create_oauth_state
        from lexcal.errors import TokenExchangeFailed

        token_endpoint(FakeResponse(400, text='{"error": "invalid_grant"}'))

        with pytest.raises(TokenExchangeFailed):
            await complete_callback(code="used-code", state=create_oauth_state(USER_ID))

        assert fake_calendar.calls == []
        assert await _credential_rows() == 0


# ---------------------------------------------------------------------------
# disconnect / check_status
# ---------------------------------------------------------------------------


class TestDisconnectAndStatus:
    @pytest.mark.asyncio
    async def test_status_without_row(self, test_db):
        from lexcal.auth.flow import check_status

        assert await check_status(USER_ID) == {"connected": False}

    @pytest.mark.asyncio
    async def test_disconnect_clears_state(self, test_db):
        from lexcal.auth.flow import check_status, disconnect
        from lexcal.credentials import upsert_credential

        await upsert_credential(USER_ID, "cal", "access", "refresh", None)
        assert await check_status(USER_ID) == {"connected": True}

        await disconnect(USER_ID)
        assert await check_status(USER_ID) == {"connected": False}

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, test_db):
        from lexcal.auth.flow import check_status, disconnect

        await disconnect(USER_ID)
        await disconnect(USER_ID)
        assert await check_status(USER_ID) == {"connected": False}

    @pytest.mark.asyncio
    async def test_status_fails_closed(self, test_db, monkeypatch):
        import aiosqlite

        from lexcal.auth.flow import check_status

        async def broken(_user_id):
            raise aiosqlite.OperationalError("disk I/O error")

        monkeypatch.setattr("lexcal.auth.flow.is_connected", broken)

        assert await check_status(USER_ID) == {"connected": False}
