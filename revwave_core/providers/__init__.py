"""Provider adapters and DTOs."""

from revwave_core.providers.base import (
    BusinessProfileAdapter,
    ProviderAccount,
    ProviderLocation,
    ProviderReview,
    ProviderReviewReply,
)

__all__ = [
    "BusinessProfileAdapter",
    "ProviderAccount",
    "ProviderLocation",
    "ProviderReview",
    "ProviderReviewReply",
]
