"""Access token lifecycle for provider integrations.

TokenManager hands out a valid access token for a tenant, refreshing it
when it is missing or expires within the refresh buffer (5 minutes by
default). New access tokens are encrypted and persisted; the refresh token
is left untouched.

Concurrent refreshes for the same tenant are not deduplicated. Both succeed
and the last write wins.

Usage:
    manager = TokenManager(
        db=session,
        crypto=crypto,
        refresher=HttpTokenRefresher(client_id, client_secret),
    )
    access_token = await manager.get_access_token("tenant-1")
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from revwave_core.domain.errors import (
    IntegrationNotConnected,
    NoRefreshToken,
    NotConnected,
    ReconnectRequired,
    RefreshFailed,
)
from revwave_core.domain.models import (
    GOOGLE_BUSINESS_PROVIDER,
    Integration,
    IntegrationStatus,
    utcnow,
)
from revwave_core.domain.services.integrations import IntegrationService
from revwave_core.infrastructure.crypto import CryptoService
from revwave_core.providers.google.oauth import TokenRefresher, TokenRefreshRejected

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_BUFFER = timedelta(minutes=5)


class TokenManager:
    """Returns valid access tokens, refreshing them ahead of expiry."""

    def __init__(
        self,
        db: Session,
        crypto: CryptoService,
        refresher: TokenRefresher,
        provider: str = GOOGLE_BUSINESS_PROVIDER,
        refresh_buffer: timedelta = DEFAULT_REFRESH_BUFFER,
    ):
        self.db = db
        self.crypto = crypto
        self.refresher = refresher
        self.provider = provider
        self.refresh_buffer = refresh_buffer
        self.integrations = IntegrationService(db, crypto, provider=provider)

    def needs_refresh(self, integration: Integration) -> bool:
        """Whether the stored access token is absent or inside the buffer."""
        if not integration.access_token or integration.token_expires_at is None:
            return True
        return integration.token_expires_at - utcnow() < self.refresh_buffer

    async def get_access_token(self, tenant_id: str) -> str:
        """Get a valid access token for the tenant.

        Raises:
            NotConnected: No integration exists for the tenant.
            IntegrationNotConnected: The integration is disconnected or errored.
            NoRefreshToken: A refresh is needed but no refresh token is stored.
            ReconnectRequired: The provider rejected the refresh token.
            RefreshFailed: The refresh failed for a transient reason.
            DecryptionFailed: A stored token could not be decrypted.
        """
        integration = self.integrations.get_integration(tenant_id)
        if integration is None:
            raise NotConnected(f"No {self.provider} integration for tenant {tenant_id}")
        if integration.status != IntegrationStatus.CONNECTED:
            raise IntegrationNotConnected(integration.status)

        if self.needs_refresh(integration):
            logger.info(f"Access token for tenant {tenant_id} expiring, refreshing")
            return await self.refresh(integration)

        return self.crypto.decrypt(integration.access_token)

    async def refresh(self, integration: Integration) -> str:
        """Refresh and persist the integration's access token.

        Returns:
            The new plaintext access token.
        """
        if not integration.refresh_token:
            raise NoRefreshToken(
                f"No refresh token stored for tenant {integration.tenant_id}"
            )
        refresh_token = self.crypto.decrypt(integration.refresh_token)

        try:
            refreshed = await self.refresher.refresh(refresh_token)
        except TokenRefreshRejected as e:
            self.integrations.mark_error(integration)
            raise ReconnectRequired(
                f"Refresh token rejected for tenant {integration.tenant_id}, "
                "please reconnect the integration"
            ) from e
        except Exception as e:
            logger.error(
                f"Token refresh failed for tenant {integration.tenant_id}: "
                f"{type(e).__name__}"
            )
            raise RefreshFailed(f"Token refresh failed: {type(e).__name__}") from e

        integration.access_token = self.crypto.encrypt(refreshed.access_token)
        integration.token_expires_at = refreshed.expires_at
        self.db.commit()

        logger.info(f"Refreshed access token for tenant {integration.tenant_id}")
        return refreshed.access_token

    def get_integration_email(self, tenant_id: str) -> Optional[str]:
        """Email address recorded for the tenant's integration, if any."""
        integration = self.integrations.get_integration(tenant_id)
        if integration is None or not integration.metadata_json:
            return None
        return integration.metadata_json.get("email")
