"""Google Business Profile sync service.

Pulls locations and reviews for a tenant and upserts them into local
storage. All writes are keyed by stable external ids, so running the sync
twice against an unchanged upstream changes nothing and reports zero new
reviews.

A failure on one location or review is recorded in the result and the
sync moves on. Credential errors (token refresh, decryption) abort the
run for the tenant.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.orm import Session

from revwave_core.domain.errors import (
    CREDENTIAL_ERRORS,
    IntegrationNotConnected,
    NotFound,
)
from revwave_core.domain.models import (
    GOOGLE_BUSINESS_PROVIDER,
    IntegrationStatus,
    Location,
    Review,
    ReplyStatus,
)
from revwave_core.domain.services.integrations import IntegrationService
from revwave_core.domain.services.locations import LocationService
from revwave_core.domain.services.replies import ReplyService
from revwave_core.domain.services.reviews import ReviewService
from revwave_core.domain.services.tokens import TokenManager
from revwave_core.observability import TenantContext, get_logger
from revwave_core.providers.base import BusinessProfileAdapter, ProviderReview
from revwave_core.providers.google.adapter import GoogleBusinessAdapter
from revwave_core.providers.google.client import ApiClient

logger = get_logger(__name__)


@dataclass
class SyncResult:
    """Result of a tenant sync."""

    locations_upserted: int = 0
    reviews_new: int = 0
    reviews_updated: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total_reviews_synced(self) -> int:
        return self.reviews_new + self.reviews_updated

    def to_dict(self) -> dict:
        return {
            "locations_upserted": self.locations_upserted,
            "reviews_new": self.reviews_new,
            "reviews_updated": self.reviews_updated,
            "total_reviews_synced": self.total_reviews_synced,
            "errors": list(self.errors),
        }


def derive_reply_status(review: ProviderReview, has_local_draft: bool) -> str:
    """Reply status in priority order: published upstream, local draft, pending."""
    if review.has_published_reply:
        return ReplyStatus.REPLIED
    if has_local_draft:
        return ReplyStatus.DRAFTED
    return ReplyStatus.PENDING


class GoogleSyncService:
    """Reconciles Google Business Profile data into local storage."""

    def __init__(
        self,
        db: Session,
        token_manager: TokenManager,
        api: Optional[ApiClient] = None,
        adapter_factory: Optional[Callable[[str], BusinessProfileAdapter]] = None,
    ):
        """Initialize the service.

        Args:
            db: SQLAlchemy database session.
            token_manager: Supplies access tokens for the tenant.
            api: API client for the default Google adapter.
            adapter_factory: Builds the provider adapter for a tenant id.
                Defaults to a GoogleBusinessAdapter over ``api``.
        """
        self.db = db
        self.token_manager = token_manager
        self.api = api or ApiClient()
        self.adapter_factory = adapter_factory or self._google_adapter

        self.integrations = IntegrationService(
            db, token_manager.crypto, provider=GOOGLE_BUSINESS_PROVIDER
        )
        self.locations = LocationService(db)
        self.reviews = ReviewService(db)
        self.replies = ReplyService(db)

    def _google_adapter(self, tenant_id: str) -> BusinessProfileAdapter:
        async def token_source() -> str:
            return await self.token_manager.get_access_token(tenant_id)

        return GoogleBusinessAdapter(self.api, token_source)

    async def sync_tenant(self, tenant_id: str) -> SyncResult:
        """Sync locations and reviews for a tenant.

        Raises:
            NotFound: The tenant has no integration.
            IntegrationNotConnected: The integration is not connected.
        """
        integration = self.integrations.get_integration(tenant_id)
        if integration is None:
            raise NotFound(f"No Google Business integration for tenant {tenant_id}")
        if integration.status != IntegrationStatus.CONNECTED:
            raise IntegrationNotConnected(integration.status)

        context = TenantContext(tenant_id=tenant_id, integration_id=integration.id)
        logger.info("Starting Google Business sync", context)

        result = SyncResult()
        adapter = self.adapter_factory(tenant_id)

        accounts = await adapter.list_accounts()
        if not accounts:
            logger.warning("No Google Business accounts found", context)
            self.integrations.update_last_sync(integration)
            return result

        account_name = accounts[0].name

        provider_locations = await adapter.list_locations(account_name)
        synced_locations: list[Location] = []

        for provider_location in provider_locations:
            try:
                location = self.locations.upsert(
                    integration_id=integration.id,
                    tenant_id=tenant_id,
                    location=provider_location,
                )
                synced_locations.append(location)
                result.locations_upserted += 1
            except CREDENTIAL_ERRORS:
                raise
            except Exception as e:
                self.db.rollback()
                error = f"Failed to sync location {provider_location.external_id}: {e}"
                logger.error(error, context)
                result.errors.append(error)

        for location in synced_locations:
            await self._sync_location_reviews(
                adapter, account_name, location, tenant_id, result, context
            )

        self.integrations.update_last_sync(integration)

        logger.info(
            "Google Business sync completed",
            context,
            locations_upserted=result.locations_upserted,
            reviews_new=result.reviews_new,
            reviews_updated=result.reviews_updated,
            error_count=len(result.errors),
        )
        return result

    async def _sync_location_reviews(
        self,
        adapter: BusinessProfileAdapter,
        account_name: str,
        location: Location,
        tenant_id: str,
        result: SyncResult,
        context: TenantContext,
    ) -> None:
        try:
            provider_reviews = await adapter.list_reviews(account_name, location.external_id)
        except CREDENTIAL_ERRORS:
            raise
        except Exception as e:
            error = f"Failed to list reviews for location {location.external_id}: {e}"
            logger.error(error, context)
            result.errors.append(error)
            return

        for provider_review in provider_reviews:
            try:
                review, created = self.reviews.upsert(
                    location_id=location.id,
                    tenant_id=tenant_id,
                    review=provider_review,
                )
                self._reconcile_reply_status(review, provider_review)

                if created:
                    result.reviews_new += 1
                else:
                    result.reviews_updated += 1
            except CREDENTIAL_ERRORS:
                raise
            except Exception as e:
                self.db.rollback()
                error = f"Failed to sync review {provider_review.external_id}: {e}"
                logger.error(error, context)
                result.errors.append(error)

    def _reconcile_reply_status(self, review: Review, provider_review: ProviderReview) -> None:
        has_local_draft = self.replies.find_latest_draft(review.id) is not None
        status = derive_reply_status(provider_review, has_local_draft)
        self.reviews.update_reply_status(review, status)
