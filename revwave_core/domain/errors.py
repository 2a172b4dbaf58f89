"""Error taxonomy for revWave core operations.

Every error carries a ``kind`` tag so callers (HTTP layer, worker tasks) can
branch on the failure without matching on message strings. Vault errors live
in ``revwave_core.infrastructure.crypto``.
"""

from typing import Optional

from revwave_core.infrastructure.crypto import VaultError


class RevwaveError(Exception):
    """Base exception for revWave core operations."""

    kind = "error"


# =============================================================================
# INTEGRATION / TOKEN LIFECYCLE
# =============================================================================


class NotConnected(RevwaveError):
    """Raised when a tenant has no integration for the provider."""

    kind = "not_connected"


class IntegrationNotConnected(NotConnected):
    """Raised when an integration exists but is not in the connected state."""

    kind = "integration_not_connected"

    def __init__(self, status: str, message: Optional[str] = None):
        super().__init__(message or f"Integration is {status}")
        self.status = status


class NoRefreshToken(RevwaveError):
    """Raised when a refresh is needed but no refresh token is stored."""

    kind = "no_refresh_token"


class ReconnectRequired(RevwaveError):
    """Raised when the provider rejected the refresh token."""

    kind = "reconnect_required"


class RefreshFailed(RevwaveError):
    """Raised when a token refresh failed for a transient reason."""

    kind = "refresh_failed"


# =============================================================================
# API CLIENT
# =============================================================================


class ClientError(RevwaveError):
    """Raised on a non-retryable 4xx response."""

    kind = "client_error"

    def __init__(self, status_code: int, message: Optional[str] = None):
        super().__init__(message or f"Request failed with status {status_code}")
        self.status_code = status_code


class ExhaustedRetries(RevwaveError):
    """Raised when every attempt of a retryable request failed."""

    kind = "exhausted_retries"

    def __init__(self, attempts: int, last_error: Optional[str] = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Request failed after {attempts} attempts{detail}")
        self.attempts = attempts
        self.last_error = last_error


# =============================================================================
# CAMPAIGNS / GENERIC
# =============================================================================


class AlreadySent(RevwaveError):
    """Raised when enqueuing a campaign that has already been sent."""

    kind = "already_sent"


class NotFound(RevwaveError):
    """Raised when a campaign, contact, review or integration does not exist."""

    kind = "not_found"


class ConsentRevoked(RevwaveError):
    """Raised when an operation requires a contact's consent and it is revoked."""

    kind = "consent_revoked"


class ConsentRequired(RevwaveError):
    """Raised when creating a contact without granted, timestamped consent."""

    kind = "consent_required"


class ContactExists(RevwaveError):
    """Raised when a tenant already has a contact with the email."""

    kind = "contact_exists"


class ReplyAlreadyPublished(RevwaveError):
    """Raised when publishing a reply that is no longer a draft."""

    kind = "reply_already_published"


# Errors that abort a whole sync or dispatch run instead of one entity
CREDENTIAL_ERRORS = (
    NotConnected,
    NoRefreshToken,
    ReconnectRequired,
    RefreshFailed,
    VaultError,
)
