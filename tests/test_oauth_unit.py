"""Unit tests for the Google OAuth flow and token refreshers."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from google.auth.exceptions import RefreshError

from revwave_core.domain.models import utcnow
from revwave_core.providers.google.oauth import (
    DEFAULT_SCOPES,
    GMAIL_SEND_SCOPE,
    GoogleAuthTokenRefresher,
    GoogleOAuthClient,
    HttpTokenRefresher,
    OAuthError,
    TokenRefreshRejected,
    expiry_from,
)


def json_transport(status: int, body: dict, seen: list):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)


class TestExpiry:
    def test_expiry_from_seconds(self):
        now = datetime(2024, 1, 1, 12, 0)
        assert expiry_from(120, now) == datetime(2024, 1, 1, 12, 2)

    def test_expiry_defaults_to_one_hour(self):
        now = datetime(2024, 1, 1, 12, 0)
        assert expiry_from(None, now) == datetime(2024, 1, 1, 13, 0)


class TestHttpTokenRefresher:
    """Tests for the httpx-based refresher."""

    @pytest.mark.asyncio
    async def test_successful_refresh(self):
        seen: list[httpx.Request] = []
        refresher = HttpTokenRefresher(
            "client-id",
            "client-secret",
            transport=json_transport(200, {"access_token": "new-token", "expires_in": 3599}, seen),
        )

        refreshed = await refresher.refresh("refresh-123")

        assert refreshed.access_token == "new-token"
        assert refreshed.expires_at > utcnow() + timedelta(minutes=59)
        form = parse_qs(seen[0].content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["refresh-123"]
        assert form["client_id"] == ["client-id"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401])
    async def test_client_error_is_rejection(self, status):
        seen: list[httpx.Request] = []
        refresher = HttpTokenRefresher(
            "client-id",
            "client-secret",
            transport=json_transport(status, {"error": "invalid_grant"}, seen),
        )

        with pytest.raises(TokenRefreshRejected) as exc_info:
            await refresher.refresh("revoked-token")

        assert "invalid_grant" in str(exc_info.value)
        assert "revoked-token" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_server_error_is_not_rejection(self):
        seen: list[httpx.Request] = []
        refresher = HttpTokenRefresher(
            "client-id",
            "client-secret",
            transport=json_transport(503, {"error": "backend_error"}, seen),
        )

        with pytest.raises(httpx.HTTPStatusError):
            await refresher.refresh("refresh-123")


class TestGoogleAuthTokenRefresher:
    """Tests for the google-auth based refresher."""

    @pytest.mark.asyncio
    async def test_successful_refresh(self):
        expiry = datetime(2030, 1, 1, 12, 0)
        credentials = MagicMock(token="ga-token", expiry=expiry)

        with patch(
            "revwave_core.providers.google.oauth.Credentials", return_value=credentials
        ) as credentials_cls, patch("revwave_core.providers.google.oauth.GoogleAuthRequest"):
            refresher = GoogleAuthTokenRefresher("client-id", "client-secret")
            refreshed = await refresher.refresh("refresh-123")

        assert refreshed.access_token == "ga-token"
        assert refreshed.expires_at == expiry
        assert credentials_cls.call_args.kwargs["refresh_token"] == "refresh-123"
        credentials.refresh.assert_called_once()

    @pytest.mark.asyncio
    async def test_refresh_error_is_rejection(self):
        credentials = MagicMock()
        credentials.refresh.side_effect = RefreshError("invalid_grant: Token has been revoked")

        with patch(
            "revwave_core.providers.google.oauth.Credentials", return_value=credentials
        ), patch("revwave_core.providers.google.oauth.GoogleAuthRequest"):
            refresher = GoogleAuthTokenRefresher("client-id", "client-secret")
            with pytest.raises(TokenRefreshRejected):
                await refresher.refresh("refresh-123")


class TestGoogleOAuthClient:
    """Tests for the authorization-code flow."""

    def _client(self, transport=None):
        return GoogleOAuthClient(
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="https://app.revwave.test/callback",
            transport=transport,
        )

    def test_authorization_url(self):
        url = self._client().build_authorization_url("state-abc")
        query = parse_qs(urlparse(url).query)

        assert query["state"] == ["state-abc"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["scope"] == [" ".join(DEFAULT_SCOPES)]
        assert query["redirect_uri"] == ["https://app.revwave.test/callback"]

    def test_authorization_url_custom_scopes(self):
        url = self._client().build_authorization_url("s", scopes=[GMAIL_SEND_SCOPE])
        assert parse_qs(urlparse(url).query)["scope"] == [GMAIL_SEND_SCOPE]

    @pytest.mark.asyncio
    async def test_exchange_code(self):
        seen: list[httpx.Request] = []
        body = {
            "access_token": "access",
            "refresh_token": "refresh",
            "expires_in": 3600,
            "scope": " ".join(DEFAULT_SCOPES),
        }
        client = self._client(json_transport(200, body, seen))

        tokens = await client.exchange_code("auth-code")

        assert tokens.access_token == "access"
        assert tokens.refresh_token == "refresh"
        assert tokens.scopes == DEFAULT_SCOPES
        form = parse_qs(seen[0].content.decode())
        assert form["code"] == ["auth-code"]
        assert form["grant_type"] == ["authorization_code"]

    @pytest.mark.asyncio
    async def test_exchange_code_failure(self):
        seen: list[httpx.Request] = []
        client = self._client(json_transport(400, {"error": "invalid_grant"}, seen))

        with pytest.raises(OAuthError):
            await client.exchange_code("bad-code")

    @pytest.mark.asyncio
    async def test_fetch_user_email(self):
        seen: list[httpx.Request] = []
        client = self._client(json_transport(200, {"email": "owner@example.com"}, seen))

        assert await client.fetch_user_email("access") == "owner@example.com"
        assert seen[0].headers["Authorization"] == "Bearer access"

    @pytest.mark.asyncio
    async def test_fetch_user_email_failure_returns_none(self):
        seen: list[httpx.Request] = []
        client = self._client(json_transport(401, {}, seen))

        assert await client.fetch_user_email("expired") is None
