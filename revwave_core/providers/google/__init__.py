"""Google Business Profile provider."""

from revwave_core.providers.google.adapter import GoogleBusinessAdapter
from revwave_core.providers.google.client import ApiClient
from revwave_core.providers.google.oauth import (
    GMAIL_SEND_SCOPE,
    GoogleAuthTokenRefresher,
    GoogleOAuthClient,
    HttpTokenRefresher,
    RefreshedToken,
    TokenRefresher,
    TokenRefreshRejected,
)

__all__ = [
    "ApiClient",
    "GMAIL_SEND_SCOPE",
    "GoogleAuthTokenRefresher",
    "GoogleBusinessAdapter",
    "GoogleOAuthClient",
    "HttpTokenRefresher",
    "RefreshedToken",
    "TokenRefresher",
    "TokenRefreshRejected",
]
