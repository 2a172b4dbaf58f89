"""Domain services for revWave."""

from revwave_core.domain.services.campaigns import CampaignService
from revwave_core.domain.services.contacts import ContactService
from revwave_core.domain.services.integrations import IntegrationService
from revwave_core.domain.services.locations import LocationService
from revwave_core.domain.services.replies import ReplyService
from revwave_core.domain.services.reviews import ReviewService
from revwave_core.domain.services.sync import GoogleSyncService
from revwave_core.domain.services.tokens import TokenManager
from revwave_core.domain.services.unsubscribe import UnsubscribeService

__all__ = [
    "CampaignService",
    "ContactService",
    "GoogleSyncService",
    "IntegrationService",
    "LocationService",
    "ReplyService",
    "ReviewService",
    "TokenManager",
    "UnsubscribeService",
]
