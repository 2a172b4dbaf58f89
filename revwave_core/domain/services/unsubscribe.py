"""Unsubscribe handling for campaign recipients.

The token in an email's unsubscribe link identifies one recipient row.
Unsubscribing revokes the contact's consent and skips the recipient if it
has not been sent yet. Both steps are no-ops when already applied, so the
link can be followed any number of times.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from revwave_core.domain.errors import NotFound
from revwave_core.domain.models import (
    CampaignRecipient,
    ConsentStatus,
    RecipientStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

UNSUBSCRIBED_MESSAGE = "Unsubscribed"
UNSUBSCRIBE_CONSENT_SOURCE = "unsubscribe_link"


@dataclass
class UnsubscribeResult:
    success: bool
    contact_email: Optional[str] = None
    consent_revoked: bool = False
    recipient_skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "contact_email": self.contact_email,
        }


def _token_prefix(token: str) -> str:
    return f"{token[:8]}..."


class UnsubscribeService:
    """Service for processing unsubscribe links."""

    def __init__(self, db: Session):
        self.db = db

    def unsubscribe(self, token: str) -> UnsubscribeResult:
        """Unsubscribe the contact behind a recipient token.

        Raises:
            NotFound: If no recipient has this token.
        """
        recipient = None
        if token:
            recipient = self.db.execute(
                select(CampaignRecipient)
                .options(joinedload(CampaignRecipient.contact))
                .where(CampaignRecipient.unsubscribe_token == token)
            ).scalar_one_or_none()

        if recipient is None:
            logger.warning(f"Unknown unsubscribe token {_token_prefix(token or '')}")
            raise NotFound("Invalid unsubscribe token")

        contact = recipient.contact
        result = UnsubscribeResult(success=True, contact_email=contact.email)

        if contact.consent_status == ConsentStatus.GRANTED:
            contact.consent_status = ConsentStatus.REVOKED
            contact.consent_timestamp = utcnow()
            contact.consent_source = UNSUBSCRIBE_CONSENT_SOURCE
            result.consent_revoked = True

        if recipient.status == RecipientStatus.PENDING:
            recipient.status = RecipientStatus.SKIPPED_UNSUBSCRIBED
            recipient.error_message = UNSUBSCRIBED_MESSAGE
            result.recipient_skipped = True

        if result.consent_revoked or result.recipient_skipped:
            self.db.commit()
            logger.info(f"Processed unsubscribe for token {_token_prefix(token)}")
        else:
            logger.info(f"Unsubscribe token {_token_prefix(token)} already processed")

        return result
