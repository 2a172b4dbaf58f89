"""Unit tests for IntegrationService."""

from datetime import timedelta

import pytest

from revwave_core.domain.models import IntegrationStatus, utcnow
from revwave_core.domain.services.integrations import IntegrationService
from revwave_core.providers.google.oauth import BUSINESS_MANAGE_SCOPE, GMAIL_SEND_SCOPE


@pytest.fixture
def service(db_session, crypto):
    return IntegrationService(db_session, crypto)


class TestStoreIntegration:
    """Tests for storing OAuth exchange results."""

    def test_creates_encrypted_integration(self, service, crypto):
        expires_at = utcnow() + timedelta(hours=1)

        integration = service.store_integration(
            tenant_id="tenant-1",
            access_token="access-1",
            refresh_token="refresh-1",
            expires_at=expires_at,
            scopes=[BUSINESS_MANAGE_SCOPE],
            metadata={"email": "owner@example.com"},
        )

        assert integration.status == IntegrationStatus.CONNECTED
        assert integration.access_token != "access-1"
        assert crypto.decrypt(integration.access_token) == "access-1"
        assert crypto.decrypt(integration.refresh_token) == "refresh-1"
        assert integration.metadata_json == {"email": "owner@example.com"}

    def test_reconnect_updates_in_place(self, service, crypto, make_integration):
        existing = make_integration(status=IntegrationStatus.ERROR)

        integration = service.store_integration(
            tenant_id="tenant-1",
            access_token="access-2",
            refresh_token="refresh-2",
            expires_at=utcnow() + timedelta(hours=1),
        )

        assert integration.id == existing.id
        assert integration.status == IntegrationStatus.CONNECTED
        assert crypto.decrypt(integration.refresh_token) == "refresh-2"

    def test_missing_refresh_token_keeps_stored_one(self, service, crypto, make_integration):
        make_integration(refresh_token="original-refresh")

        integration = service.store_integration(
            tenant_id="tenant-1",
            access_token="access-2",
            refresh_token=None,
            expires_at=utcnow() + timedelta(hours=1),
        )

        assert crypto.decrypt(integration.refresh_token) == "original-refresh"
        assert crypto.decrypt(integration.access_token) == "access-2"


class TestConnectionState:
    def test_is_connected(self, service, make_integration):
        assert service.is_connected("tenant-1") is False
        make_integration()
        assert service.is_connected("tenant-1") is True

    def test_has_scope(self, service, make_integration):
        make_integration(scopes=[BUSINESS_MANAGE_SCOPE, GMAIL_SEND_SCOPE])

        assert service.has_scope("tenant-1", GMAIL_SEND_SCOPE) is True
        assert service.has_scope("tenant-1", "https://example.com/other") is False
        assert service.has_scope("tenant-2", GMAIL_SEND_SCOPE) is False

    def test_errored_integration_has_no_scopes(self, service, make_integration):
        make_integration(status=IntegrationStatus.ERROR, scopes=[GMAIL_SEND_SCOPE])
        assert service.has_scope("tenant-1", GMAIL_SEND_SCOPE) is False

    def test_disconnect_clears_tokens(self, service, make_integration):
        integration = make_integration()

        assert service.disconnect("tenant-1") is True

        assert integration.status == IntegrationStatus.DISCONNECTED
        assert integration.access_token is None
        assert integration.refresh_token is None
        assert integration.token_expires_at is None

    def test_disconnect_without_integration(self, service):
        assert service.disconnect("tenant-1") is False

    def test_mark_error(self, service, make_integration):
        integration = make_integration()

        service.mark_error(integration)

        assert integration.status == IntegrationStatus.ERROR
        assert service.is_connected("tenant-1") is False

    def test_list_connected(self, service, make_integration):
        make_integration(tenant_id="tenant-a")
        make_integration(tenant_id="tenant-b", status=IntegrationStatus.DISCONNECTED)
        make_integration(tenant_id="tenant-c")

        tenants = [i.tenant_id for i in service.list_connected()]

        assert tenants == ["tenant-a", "tenant-c"]

    def test_update_last_sync(self, service, make_integration):
        integration = make_integration()

        service.update_last_sync(integration)

        assert integration.last_sync_at is not None
