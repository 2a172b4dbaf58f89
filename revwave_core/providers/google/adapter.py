"""Google Business Profile adapter.

Implements BusinessProfileAdapter on top of ApiClient:

- Accounts: Account Management API v1
- Locations: Business Information API v1 (with readMask)
- Reviews: My Business API v4

Every request asks the token source for an access token, so a token that
expires mid-sync is refreshed transparently by the TokenManager.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from revwave_core.domain.models import GOOGLE_BUSINESS_PROVIDER, utcnow
from revwave_core.providers.base import (
    BusinessProfileAdapter,
    ProviderAccount,
    ProviderLocation,
    ProviderReview,
    ProviderReviewReply,
)
from revwave_core.providers.google.client import ApiClient

logger = logging.getLogger(__name__)

ACCOUNTS_URL = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
BUSINESS_INFO_BASE_URL = "https://mybusinessbusinessinformation.googleapis.com/v1"
REVIEWS_BASE_URL = "https://mybusiness.googleapis.com/v4"

LOCATION_READ_MASK = "name,title,storefrontAddress,phoneNumbers,websiteUri,metadata"
LOCATION_PAGE_SIZE = 100
REVIEW_PAGE_SIZE = 50

STAR_RATINGS = {
    "ONE": 1,
    "TWO": 2,
    "THREE": 3,
    "FOUR": 4,
    "FIVE": 5,
}
# Missing or unrecognized star ratings are stored as 5
DEFAULT_RATING = 5

ANONYMOUS_REVIEWER = "Anonymous"


def map_star_rating(star_rating: Optional[str]) -> int:
    """Map a Google starRating enum to an integer 1-5."""
    if not star_rating:
        return DEFAULT_RATING
    return STAR_RATINGS.get(star_rating.upper(), DEFAULT_RATING)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp into naive UTC, or None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_address(storefront_address: Optional[dict[str, Any]]) -> Optional[str]:
    if not storefront_address:
        return None
    lines = storefront_address.get("addressLines") or []
    return ", ".join(lines) or None


def parse_location(data: dict[str, Any]) -> ProviderLocation:
    """Normalize a Business Information location resource."""
    phone_numbers = data.get("phoneNumbers") or {}
    return ProviderLocation(
        external_id=data["name"],
        name=data.get("title") or data["name"],
        address=format_address(data.get("storefrontAddress")),
        phone_number=phone_numbers.get("primaryPhone"),
        website_url=data.get("websiteUri"),
        metadata=data.get("metadata"),
    )


def parse_review(data: dict[str, Any]) -> ProviderReview:
    """Normalize a My Business v4 review resource."""
    reviewer = data.get("reviewer") or {}

    reply = None
    reply_data = data.get("reviewReply")
    if reply_data and reply_data.get("comment"):
        reply = ProviderReviewReply(
            comment=reply_data["comment"],
            update_time=parse_timestamp(reply_data.get("updateTime")),
        )

    return ProviderReview(
        external_id=data.get("reviewId") or data["name"],
        rating=map_star_rating(data.get("starRating")),
        reviewer_name=reviewer.get("displayName") or ANONYMOUS_REVIEWER,
        reviewer_avatar=reviewer.get("profilePhotoUrl"),
        published_at=parse_timestamp(data.get("createTime")) or utcnow(),
        content=data.get("comment"),
        reply=reply,
        raw_data=data,
    )


class GoogleBusinessAdapter(BusinessProfileAdapter):
    """Google Business Profile adapter."""

    def __init__(
        self,
        api: ApiClient,
        token_source: Callable[[], Awaitable[str]],
    ):
        """Initialize the adapter.

        Args:
            api: Resilient API client.
            token_source: Coroutine function returning a valid access token.
        """
        self.api = api
        self.token_source = token_source

    @property
    def provider_id(self) -> str:
        return GOOGLE_BUSINESS_PROVIDER

    async def _get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> dict:
        access_token = await self.token_source()
        response = await self.api.request(url, access_token, params=params)
        if not response.content:
            return {}
        return response.json()

    async def _paginate(
        self, url: str, key: str, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page_token: Optional[str] = None

        while True:
            page_params = dict(params)
            if page_token:
                page_params["pageToken"] = page_token

            data = await self._get_json(url, page_params)
            items.extend(data.get(key) or [])

            page_token = data.get("nextPageToken")
            if not page_token:
                return items

    async def list_accounts(self) -> list[ProviderAccount]:
        data = await self._paginate(ACCOUNTS_URL, "accounts", {})
        return [
            ProviderAccount(
                name=account["name"],
                account_name=account.get("accountName"),
                raw_data=account,
            )
            for account in data
        ]

    async def list_locations(self, account_name: str) -> list[ProviderLocation]:
        url = f"{BUSINESS_INFO_BASE_URL}/{account_name}/locations"
        data = await self._paginate(
            url,
            "locations",
            {"readMask": LOCATION_READ_MASK, "pageSize": LOCATION_PAGE_SIZE},
        )
        logger.info(f"Found {len(data)} locations for {account_name}")
        return [parse_location(location) for location in data]

    async def list_reviews(
        self, account_name: str, location_external_id: str
    ) -> list[ProviderReview]:
        url = f"{REVIEWS_BASE_URL}/{account_name}/{location_external_id}/reviews"
        data = await self._paginate(url, "reviews", {"pageSize": REVIEW_PAGE_SIZE})
        logger.info(f"Found {len(data)} reviews for {location_external_id}")
        return [parse_review(review) for review in data]
