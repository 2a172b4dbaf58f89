"""Unit tests for the Google Business Profile adapter and its parsers."""

from datetime import datetime

import httpx
import pytest

from revwave_core.providers.google.adapter import (
    ACCOUNTS_URL,
    BUSINESS_INFO_BASE_URL,
    REVIEWS_BASE_URL,
    GoogleBusinessAdapter,
    map_star_rating,
    parse_location,
    parse_review,
    parse_timestamp,
)
from revwave_core.providers.google.client import ApiClient


async def _no_sleep(delay: float) -> None:
    return None


def routed_transport(routes: dict, seen: list):
    """MockTransport serving JSON pages keyed by (path, pageToken)."""

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        key = (request.url.path, request.url.params.get("pageToken"))
        if key not in routes:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=routes[key])

    return httpx.MockTransport(handler)


class TestStarRating:
    @pytest.mark.parametrize(
        "value,expected",
        [("ONE", 1), ("TWO", 2), ("THREE", 3), ("FOUR", 4), ("FIVE", 5), ("four", 4)],
    )
    def test_known_values(self, value, expected):
        assert map_star_rating(value) == expected

    @pytest.mark.parametrize("value", [None, "", "STAR_RATING_UNSPECIFIED", "SIX"])
    def test_missing_or_unknown_defaults_to_five(self, value):
        assert map_star_rating(value) == 5


class TestParsers:
    """Tests for resource normalization."""

    def test_parse_timestamp_to_naive_utc(self):
        parsed = parse_timestamp("2024-03-01T10:30:00+02:00")
        assert parsed == datetime(2024, 3, 1, 8, 30)
        assert parsed.tzinfo is None

    def test_parse_timestamp_zulu(self):
        assert parse_timestamp("2024-03-01T10:30:00Z") == datetime(2024, 3, 1, 10, 30)

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_parse_timestamp_invalid(self, value):
        assert parse_timestamp(value) is None

    def test_parse_location(self):
        location = parse_location(
            {
                "name": "locations/456",
                "title": "Main Street Cafe",
                "storefrontAddress": {"addressLines": ["1 Main St", "Suite 2"]},
                "phoneNumbers": {"primaryPhone": "+1 555 0100"},
                "websiteUri": "https://cafe.example.com",
                "metadata": {"mapsUri": "https://maps.example.com/456"},
            }
        )

        assert location.external_id == "locations/456"
        assert location.name == "Main Street Cafe"
        assert location.address == "1 Main St, Suite 2"
        assert location.phone_number == "+1 555 0100"
        assert location.website_url == "https://cafe.example.com"
        assert location.metadata == {"mapsUri": "https://maps.example.com/456"}

    def test_parse_location_minimal(self):
        location = parse_location({"name": "locations/789"})

        assert location.name == "locations/789"
        assert location.address is None
        assert location.phone_number is None

    def test_parse_review_with_reply(self):
        review = parse_review(
            {
                "name": "accounts/1/locations/456/reviews/r1",
                "reviewId": "r1",
                "starRating": "FOUR",
                "comment": "Great coffee",
                "createTime": "2024-02-01T12:00:00Z",
                "reviewer": {"displayName": "Ana", "profilePhotoUrl": "https://img/ana"},
                "reviewReply": {
                    "comment": "Thanks Ana!",
                    "updateTime": "2024-02-02T09:00:00Z",
                },
            }
        )

        assert review.external_id == "r1"
        assert review.rating == 4
        assert review.reviewer_name == "Ana"
        assert review.reviewer_avatar == "https://img/ana"
        assert review.published_at == datetime(2024, 2, 1, 12, 0)
        assert review.content == "Great coffee"
        assert review.has_published_reply is True
        assert review.reply.comment == "Thanks Ana!"

    def test_parse_review_defaults(self):
        review = parse_review({"name": "accounts/1/locations/456/reviews/r2"})

        assert review.external_id == "accounts/1/locations/456/reviews/r2"
        assert review.rating == 5
        assert review.reviewer_name == "Anonymous"
        assert review.published_at is not None
        assert review.has_published_reply is False

    def test_parse_review_empty_reply_is_ignored(self):
        review = parse_review({"reviewId": "r3", "reviewReply": {"comment": ""}})
        assert review.has_published_reply is False


class TestGoogleBusinessAdapter:
    """Tests for the paginated listing calls."""

    @pytest.fixture
    def token_calls(self):
        return []

    def _adapter(self, routes, seen, token_calls):
        async def token_source() -> str:
            token_calls.append(1)
            return "access-token"

        api = ApiClient(sleep=_no_sleep, transport=routed_transport(routes, seen))
        return GoogleBusinessAdapter(api, token_source)

    @pytest.mark.asyncio
    async def test_list_accounts(self, token_calls):
        seen: list[httpx.Request] = []
        routes = {
            (httpx.URL(ACCOUNTS_URL).path, None): {
                "accounts": [{"name": "accounts/1", "accountName": "Cafe Group"}]
            }
        }
        adapter = self._adapter(routes, seen, token_calls)

        accounts = await adapter.list_accounts()

        assert [a.name for a in accounts] == ["accounts/1"]
        assert accounts[0].account_name == "Cafe Group"
        assert adapter.provider_id == "google_business"

    @pytest.mark.asyncio
    async def test_list_locations_follows_pagination(self, token_calls):
        seen: list[httpx.Request] = []
        path = httpx.URL(f"{BUSINESS_INFO_BASE_URL}/accounts/1/locations").path
        routes = {
            (path, None): {
                "locations": [{"name": "locations/1", "title": "One"}],
                "nextPageToken": "page-2",
            },
            (path, "page-2"): {"locations": [{"name": "locations/2", "title": "Two"}]},
        }
        adapter = self._adapter(routes, seen, token_calls)

        locations = await adapter.list_locations("accounts/1")

        assert [loc.external_id for loc in locations] == ["locations/1", "locations/2"]
        assert len(seen) == 2
        assert seen[0].url.params["readMask"]
        assert seen[0].url.params["pageSize"] == "100"
        # A token is requested per page
        assert len(token_calls) == 2

    @pytest.mark.asyncio
    async def test_list_reviews(self, token_calls):
        seen: list[httpx.Request] = []
        path = httpx.URL(f"{REVIEWS_BASE_URL}/accounts/1/locations/9/reviews").path
        routes = {
            (path, None): {
                "reviews": [
                    {"reviewId": "a", "starRating": "ONE"},
                    {"reviewId": "b", "starRating": "THREE"},
                ],
            },
        }
        adapter = self._adapter(routes, seen, token_calls)

        reviews = await adapter.list_reviews("accounts/1", "locations/9")

        assert [(r.external_id, r.rating) for r in reviews] == [("a", 1), ("b", 3)]
        assert seen[0].url.params["pageSize"] == "50"
        assert seen[0].headers["Authorization"] == "Bearer access-token"

    @pytest.mark.asyncio
    async def test_empty_page(self, token_calls):
        seen: list[httpx.Request] = []
        path = httpx.URL(f"{REVIEWS_BASE_URL}/accounts/1/locations/9/reviews").path
        adapter = self._adapter({(path, None): {}}, seen, token_calls)

        assert await adapter.list_reviews("accounts/1", "locations/9") == []
