"""Integration service for per-tenant OAuth connections.

Stores the tokens returned by the OAuth exchange (encrypted with
CryptoService) and tracks the connection status.

Usage:
    crypto = CryptoService(settings.encryption_key)
    service = IntegrationService(db_session, crypto)

    integration = service.store_integration(
        tenant_id="tenant-1",
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=tokens.expires_at,
        scopes=tokens.scopes,
        metadata={"email": "owner@example.com"},
    )
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from revwave_core.domain.models import (
    GOOGLE_BUSINESS_PROVIDER,
    Integration,
    IntegrationStatus,
    utcnow,
)
from revwave_core.infrastructure.crypto import CryptoService

logger = logging.getLogger(__name__)


class IntegrationService:
    """Service for managing provider integrations."""

    def __init__(
        self,
        db: Session,
        crypto: CryptoService,
        provider: str = GOOGLE_BUSINESS_PROVIDER,
    ):
        """Initialize the service.

        Args:
            db: SQLAlchemy database session.
            crypto: CryptoService instance for token encryption.
            provider: Provider name the integrations belong to.
        """
        self.db = db
        self.crypto = crypto
        self.provider = provider

    def get_integration(self, tenant_id: str) -> Optional[Integration]:
        """Get the tenant's integration for this provider, if any."""
        return self.db.execute(
            select(Integration).where(
                Integration.tenant_id == tenant_id,
                Integration.provider == self.provider,
            )
        ).scalar_one_or_none()

    def list_connected(self) -> list[Integration]:
        """List every connected integration for this provider."""
        return list(
            self.db.execute(
                select(Integration)
                .where(
                    Integration.provider == self.provider,
                    Integration.status == IntegrationStatus.CONNECTED,
                )
                .order_by(Integration.id)
            ).scalars()
        )

    def store_integration(
        self,
        tenant_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
        scopes: Optional[list[str]] = None,
        metadata: Optional[dict] = None,
    ) -> Integration:
        """Create or update the tenant's integration after an OAuth exchange.

        A refresh token of None keeps the stored one; Google only returns a
        refresh token on the first consent.

        Returns:
            The created or updated Integration, status connected.
        """
        existing = self.get_integration(tenant_id)

        encrypted_access = self.crypto.encrypt(access_token)
        encrypted_refresh = self.crypto.encrypt(refresh_token) if refresh_token else None

        if existing:
            existing.access_token = encrypted_access
            if encrypted_refresh:
                existing.refresh_token = encrypted_refresh
            existing.token_expires_at = expires_at
            existing.scopes = scopes
            if metadata is not None:
                existing.metadata_json = metadata
            existing.status = IntegrationStatus.CONNECTED
            self.db.commit()
            self.db.refresh(existing)
            logger.info(f"Updated {self.provider} integration for tenant {tenant_id}")
            return existing

        integration = Integration(
            tenant_id=tenant_id,
            provider=self.provider,
            status=IntegrationStatus.CONNECTED,
            access_token=encrypted_access,
            refresh_token=encrypted_refresh,
            token_expires_at=expires_at,
            scopes=scopes,
            metadata_json=metadata,
        )
        self.db.add(integration)
        self.db.commit()
        self.db.refresh(integration)
        logger.info(f"Created {self.provider} integration for tenant {tenant_id}")
        return integration

    def is_connected(self, tenant_id: str) -> bool:
        integration = self.get_integration(tenant_id)
        return integration is not None and integration.status == IntegrationStatus.CONNECTED

    def has_scope(self, tenant_id: str, scope: str) -> bool:
        """Whether the tenant has a connected integration that granted scope."""
        integration = self.get_integration(tenant_id)
        if integration is None or integration.status != IntegrationStatus.CONNECTED:
            return False
        return scope in (integration.scopes or [])

    def disconnect(self, tenant_id: str) -> bool:
        """Revoke the integration locally: clear tokens and mark disconnected.

        Returns:
            True if an integration was disconnected, False if none existed.
        """
        integration = self.get_integration(tenant_id)
        if integration is None:
            return False

        integration.access_token = None
        integration.refresh_token = None
        integration.token_expires_at = None
        integration.status = IntegrationStatus.DISCONNECTED
        self.db.commit()
        logger.info(f"Disconnected {self.provider} integration for tenant {tenant_id}")
        return True

    def mark_error(self, integration: Integration) -> None:
        """Flag the integration as needing a reconnect."""
        integration.status = IntegrationStatus.ERROR
        self.db.commit()
        logger.warning(
            f"{self.provider} integration for tenant {integration.tenant_id} marked as error"
        )

    def update_last_sync(self, integration: Integration) -> None:
        integration.last_sync_at = utcnow()
        self.db.commit()
