"""Base provider interface and DTOs.

This module defines the interface a business-data provider adapter must
implement, along with normalized data transfer objects:

- ProviderAccount: Business account the tenant has access to
- ProviderLocation: Normalized business location
- ProviderReview: Normalized customer review (rating already mapped to 1-5)
- ProviderReviewReply: Owner reply published on the provider

Usage:
    class GoogleBusinessAdapter(BusinessProfileAdapter):
        @property
        def provider_id(self) -> str:
            return "google_business"

        async def list_accounts(self) -> list[ProviderAccount]:
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class ProviderAccount:
    """Business account visible to the authorized user."""

    name: str  # Resource name, e.g. "accounts/123"
    account_name: Optional[str] = None
    raw_data: Optional[dict] = None


@dataclass
class ProviderLocation:
    """Normalized business location."""

    external_id: str  # Resource name, e.g. "locations/456"
    name: str

    # Optional fields
    address: Optional[str] = None
    phone_number: Optional[str] = None
    website_url: Optional[str] = None
    metadata: Optional[dict] = None


@dataclass
class ProviderReviewReply:
    """Owner reply as published on the provider."""

    comment: str
    update_time: Optional[datetime] = None


@dataclass
class ProviderReview:
    """Normalized customer review."""

    external_id: str
    rating: int
    reviewer_name: str
    published_at: datetime

    # Optional fields
    content: Optional[str] = None
    reviewer_avatar: Optional[str] = None
    reply: Optional[ProviderReviewReply] = None
    raw_data: Optional[dict] = None

    @property
    def has_published_reply(self) -> bool:
        return self.reply is not None


# =============================================================================
# PROVIDER ADAPTER INTERFACE
# =============================================================================


class BusinessProfileAdapter(ABC):
    """Abstract base class for business-data provider adapters.

    Methods:
        list_accounts: List the accounts the token can see
        list_locations: List locations under an account
        list_reviews: List reviews of a location
    """

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Return the unique provider identifier (e.g., 'google_business')."""
        ...

    @abstractmethod
    async def list_accounts(self) -> list[ProviderAccount]:
        """List the business accounts visible to the tenant."""
        ...

    @abstractmethod
    async def list_locations(self, account_name: str) -> list[ProviderLocation]:
        """List all locations of an account.

        Args:
            account_name: Account resource name (e.g. "accounts/123").

        Returns:
            Every location, following pagination to the end.
        """
        ...

    @abstractmethod
    async def list_reviews(
        self, account_name: str, location_external_id: str
    ) -> list[ProviderReview]:
        """List all reviews of a location.

        Args:
            account_name: Account resource name the location belongs to.
            location_external_id: Location resource name (e.g. "locations/456").

        Returns:
            Every review, following pagination to the end.
        """
        ...
