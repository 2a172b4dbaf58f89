"""Google OAuth integration.

Handles the Google OAuth2 flow for the Business Profile integration:
1. Generate authorization URL with state
2. Exchange authorization code for tokens
3. Refresh access tokens (two interchangeable refreshers)

Usage:
    oauth = GoogleOAuthClient(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
    )

    url = oauth.build_authorization_url(state)
    tokens = await oauth.exchange_code(code)

    refresher = HttpTokenRefresher(settings.google_client_id, settings.google_client_secret)
    refreshed = await refresher.refresh(refresh_token)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Protocol
from urllib.parse import urlencode

import httpx
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.credentials import Credentials

from revwave_core.domain.errors import RevwaveError
from revwave_core.domain.models import utcnow

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

BUSINESS_MANAGE_SCOPE = "https://www.googleapis.com/auth/business.manage"
GMAIL_SEND_SCOPE = "https://www.googleapis.com/auth/gmail.send"
USERINFO_EMAIL_SCOPE = "https://www.googleapis.com/auth/userinfo.email"

DEFAULT_SCOPES = [
    BUSINESS_MANAGE_SCOPE,
    GMAIL_SEND_SCOPE,
    USERINFO_EMAIL_SCOPE,
]

# Google tokens live for an hour when expires_in is absent
DEFAULT_EXPIRES_IN = 3600


# =============================================================================
# RESULTS / EXCEPTIONS
# =============================================================================


@dataclass
class RefreshedToken:
    """A freshly issued access token."""

    access_token: str
    expires_at: datetime


@dataclass
class OAuthTokens:
    """Tokens returned by the authorization-code exchange."""

    access_token: str
    expires_at: datetime
    refresh_token: Optional[str] = None
    scopes: list[str] = field(default_factory=list)


class OAuthError(RevwaveError):
    """Raised when the OAuth exchange fails."""

    kind = "oauth_error"


class TokenRefreshRejected(RevwaveError):
    """Raised by a refresher when the provider rejects the refresh token."""

    kind = "refresh_rejected"


def expiry_from(expires_in: Optional[int], now: Optional[datetime] = None) -> datetime:
    """Absolute naive-UTC expiry for an expires_in value in seconds."""
    base = now or utcnow()
    return base + timedelta(seconds=int(expires_in or DEFAULT_EXPIRES_IN))


def _error_code(response: httpx.Response) -> str:
    try:
        return response.json().get("error", "unknown_error")
    except ValueError:
        return "unknown_error"


# =============================================================================
# REFRESHERS
# =============================================================================


class TokenRefresher(Protocol):
    """Exchanges a refresh token for a new access token.

    Implementations raise TokenRefreshRejected when the provider refuses the
    refresh token. Any other exception is treated as transient.
    """

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        ...


class HttpTokenRefresher:
    """Refreshes tokens by POSTing to the Google token endpoint with httpx."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str = TOKEN_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.timeout = timeout
        self._transport = transport

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                self.token_url,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )

        if 400 <= response.status_code < 500:
            raise TokenRefreshRejected(
                f"Token refresh rejected ({response.status_code}): {_error_code(response)}"
            )
        response.raise_for_status()

        data = response.json()
        return RefreshedToken(
            access_token=data["access_token"],
            expires_at=expiry_from(data.get("expires_in")),
        )


class GoogleAuthTokenRefresher:
    """Refreshes tokens with the google-auth library.

    google-auth's transport is synchronous, so the refresh runs in a worker
    thread.
    """

    def __init__(self, client_id: str, client_secret: str, token_url: str = TOKEN_URL):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url

    def _refresh_sync(self, refresh_token: str) -> Credentials:
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=self.token_url,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )
        credentials.refresh(GoogleAuthRequest())
        return credentials

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        try:
            credentials = await asyncio.to_thread(self._refresh_sync, refresh_token)
        except RefreshError as e:
            if getattr(e, "retryable", False):
                raise
            raise TokenRefreshRejected(f"Token refresh rejected: {e}") from e

        # google-auth reports expiry as naive UTC
        return RefreshedToken(
            access_token=credentials.token,
            expires_at=credentials.expiry or expiry_from(None),
        )


# =============================================================================
# AUTHORIZATION CODE FLOW
# =============================================================================


class GoogleOAuthClient:
    """Builds consent URLs and exchanges authorization codes."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    def build_authorization_url(
        self, state: str, scopes: Optional[list[str]] = None
    ) -> str:
        """Build the Google consent screen URL.

        Requests offline access with a forced consent prompt so Google
        always returns a refresh token.
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes or DEFAULT_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange an authorization code for tokens.

        Raises:
            OAuthError: If the token endpoint refuses the code.
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
            )

        if response.status_code != 200:
            raise OAuthError(f"Token exchange failed: {_error_code(response)}")

        data = response.json()
        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=expiry_from(data.get("expires_in")),
            scopes=(data.get("scope") or "").split(),
        )

    async def fetch_user_email(self, access_token: str) -> Optional[str]:
        """Return the email of the authorized Google account, if granted."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )

        if response.status_code != 200:
            logger.warning(f"Failed to fetch Google user info: {response.status_code}")
            return None
        return response.json().get("email")
