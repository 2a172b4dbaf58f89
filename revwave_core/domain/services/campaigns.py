"""Campaign service: creation, enqueuing, throttled dispatch and reporting.

Enqueuing creates one pending recipient per consenting contact and hands
the campaign to a DispatchQueue. Dispatch then sends to each pending
recipient in turn, one at a time, sleeping between sends to stay under
provider rate limits.

Usage:
    service = CampaignService(db, settings, token_manager, dispatch_queue=queue)
    result = service.enqueue_sending(campaign.id, "tenant-1")
    # ... later, from the queue worker
    await service.dispatch(campaign.id, "tenant-1")
"""

import asyncio
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from revwave_core.config import Settings
from revwave_core.domain.errors import (
    CREDENTIAL_ERRORS,
    AlreadySent,
    ConsentRevoked,
    NotFound,
)
from revwave_core.domain.models import (
    Campaign,
    CampaignRecipient,
    CampaignStatus,
    ConsentStatus,
    Contact,
    RecipientStatus,
    utcnow,
)
from revwave_core.domain.services.dispatch_queue import DispatchQueue
from revwave_core.domain.services.integrations import IntegrationService
from revwave_core.domain.services.tokens import TokenManager
from revwave_core.observability import TenantContext, get_logger
from revwave_core.providers.email.base import (
    OutgoingEmail,
    SendChannel,
    SendOutcome,
    append_unsubscribe_link,
)
from revwave_core.providers.email.gmail import GmailOAuthChannel
from revwave_core.providers.email.smtp import SmtpChannel
from revwave_core.providers.google.oauth import GMAIL_SEND_SCOPE

logger = get_logger(__name__)

CONSENT_REVOKED_MESSAGE = "Contact consent revoked"

# 32 random bytes, hex encoded
UNSUBSCRIBE_TOKEN_BYTES = 32


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class EnqueueResult:
    campaign_id: int
    recipient_count: int
    status: str

    def to_dict(self) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "recipient_count": self.recipient_count,
            "status": self.status,
        }


@dataclass
class DispatchResult:
    """Outcome of one dispatch run."""

    campaign_id: int
    channel: Optional[str] = None
    sent: int = 0
    failed: int = 0
    consent_revoked: int = 0
    skipped: int = 0
    status: Optional[str] = None

    @property
    def processed(self) -> int:
        return self.sent + self.failed + self.consent_revoked + self.skipped

    def to_dict(self) -> dict:
        return {
            "campaign_id": self.campaign_id,
            "channel": self.channel,
            "sent": self.sent,
            "failed": self.failed,
            "consent_revoked": self.consent_revoked,
            "skipped": self.skipped,
            "status": self.status,
        }


@dataclass
class CampaignStats:
    total: int = 0
    pending: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0  # consent revoked or unsubscribed


@dataclass
class RecipientReport:
    id: int
    contact_id: int
    email: str
    status: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None


@dataclass
class CampaignReport:
    campaign_id: int
    name: str
    subject: str
    status: str
    sent_at: Optional[datetime]
    stats: CampaignStats
    recipients: list[RecipientReport] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "campaign": {
                "id": self.campaign_id,
                "name": self.name,
                "subject": self.subject,
                "status": self.status,
                "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            },
            "stats": {
                "total": self.stats.total,
                "pending": self.stats.pending,
                "sent": self.stats.sent,
                "failed": self.stats.failed,
                "skipped": self.stats.skipped,
            },
            "recipients": [
                {
                    "id": r.id,
                    "contact": {
                        "id": r.contact_id,
                        "email": r.email,
                        "first_name": r.first_name,
                        "last_name": r.last_name,
                    },
                    "status": r.status,
                    "sent_at": r.sent_at.isoformat() if r.sent_at else None,
                    "error_message": r.error_message,
                }
                for r in self.recipients
            ],
        }


def generate_unsubscribe_token() -> str:
    return secrets.token_hex(UNSUBSCRIBE_TOKEN_BYTES)


# =============================================================================
# SERVICE
# =============================================================================


class CampaignService:
    """Service for email campaigns."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        token_manager: TokenManager,
        dispatch_queue: Optional[DispatchQueue] = None,
        smtp_channel: Optional[SendChannel] = None,
        gmail_channel_factory: Optional[Callable[[str], SendChannel]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the service.

        Args:
            db: SQLAlchemy database session.
            settings: Application settings (sender, SMTP, throttle, web app URL).
            token_manager: Supplies OAuth tokens for the Gmail channel.
            dispatch_queue: Receives campaigns after enqueue_sending.
            smtp_channel: Shared-credential channel. Built from settings if omitted.
            gmail_channel_factory: Builds the OAuth channel for a tenant id.
            sleep: Coroutine used for the per-recipient throttle.
        """
        self.db = db
        self.settings = settings
        self.token_manager = token_manager
        self.dispatch_queue = dispatch_queue
        self.smtp_channel = smtp_channel or SmtpChannel.from_settings(settings)
        self.gmail_channel_factory = gmail_channel_factory or self._gmail_channel
        self._sleep = sleep
        self.integrations = IntegrationService(db, token_manager.crypto)

    def _gmail_channel(self, tenant_id: str) -> SendChannel:
        return GmailOAuthChannel(
            tenant_id,
            self.token_manager,
            timeout=self.settings.api_timeout_seconds,
        )

    # -------------------------------------------------------------------------
    # Campaign records
    # -------------------------------------------------------------------------

    def create_campaign(
        self,
        tenant_id: str,
        name: str,
        subject: str,
        body_html: str,
        scheduled_at: Optional[datetime] = None,
        created_by_user_id: Optional[str] = None,
    ) -> Campaign:
        campaign = Campaign(
            tenant_id=tenant_id,
            name=name,
            subject=subject,
            body_html=body_html,
            status=CampaignStatus.DRAFT,
            scheduled_at=scheduled_at,
            created_by_user_id=created_by_user_id,
        )
        self.db.add(campaign)
        self.db.commit()
        self.db.refresh(campaign)
        logger.info(f"Created campaign \"{name}\"", TenantContext(tenant_id, campaign_id=campaign.id))
        return campaign

    def find_one(self, campaign_id: int, tenant_id: str) -> Campaign:
        """Get a tenant's campaign.

        Raises:
            NotFound: If the campaign does not exist for the tenant.
        """
        campaign = self.db.execute(
            select(Campaign).where(
                Campaign.id == campaign_id,
                Campaign.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if campaign is None:
            raise NotFound(f"Campaign {campaign_id} not found")
        return campaign

    def list_campaigns(self, tenant_id: str) -> list[Campaign]:
        return list(
            self.db.execute(
                select(Campaign)
                .where(Campaign.tenant_id == tenant_id)
                .order_by(Campaign.created_at.desc(), Campaign.id.desc())
            ).scalars()
        )

    # -------------------------------------------------------------------------
    # Enqueue
    # -------------------------------------------------------------------------

    def _eligible_contacts(
        self,
        campaign_id: int,
        tenant_id: str,
        contact_ids: Optional[Iterable[int]],
    ) -> list[Contact]:
        already_queued = select(CampaignRecipient.contact_id).where(
            CampaignRecipient.campaign_id == campaign_id
        )
        query = select(Contact).where(
            Contact.tenant_id == tenant_id,
            Contact.consent_status == ConsentStatus.GRANTED,
            Contact.id.not_in(already_queued),
        )
        if contact_ids:
            query = query.where(Contact.id.in_(list(contact_ids)))
        return list(self.db.execute(query.order_by(Contact.id)).scalars())

    def enqueue_sending(
        self,
        campaign_id: int,
        tenant_id: str,
        contact_ids: Optional[Iterable[int]] = None,
    ) -> EnqueueResult:
        """Create pending recipients and hand the campaign to the dispatch queue.

        Only contacts whose consent is granted are included, including when
        contact_ids names revoked contacts. An empty contact_ids targets every
        consenting contact. Queue failures are logged, never raised.

        Raises:
            NotFound: If the campaign does not exist for the tenant.
            AlreadySent: If the campaign was already sent.
        """
        campaign = self.find_one(campaign_id, tenant_id)
        if campaign.status == CampaignStatus.SENT:
            raise AlreadySent(f"Campaign {campaign_id} has already been sent")

        context = TenantContext(tenant_id, campaign_id=campaign.id)
        logger.info("Enqueuing campaign for sending", context)

        contacts = self._eligible_contacts(campaign.id, tenant_id, contact_ids)
        for contact in contacts:
            self.db.add(
                CampaignRecipient(
                    campaign_id=campaign.id,
                    contact_id=contact.id,
                    status=RecipientStatus.PENDING,
                    unsubscribe_token=generate_unsubscribe_token(),
                )
            )

        campaign.status = CampaignStatus.SCHEDULED
        self.db.commit()

        logger.info(f"Created {len(contacts)} recipient records", context)

        if self.dispatch_queue is not None:
            try:
                self.dispatch_queue.submit(campaign.id, tenant_id)
            except Exception as e:
                logger.error(f"Failed to queue campaign dispatch: {e}", context, exc_info=True)
        else:
            logger.warning("No dispatch queue configured, campaign left scheduled", context)

        return EnqueueResult(
            campaign_id=campaign.id,
            recipient_count=len(contacts),
            status=CampaignStatus.SCHEDULED,
        )

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def select_channel(self, tenant_id: str) -> tuple[SendChannel, str]:
        """Pick the send channel and From address for a dispatch run.

        A connected integration that granted gmail.send sends from the
        tenant's own account; everything else goes through shared SMTP.
        """
        if self.integrations.has_scope(tenant_id, GMAIL_SEND_SCOPE):
            from_email = (
                self.token_manager.get_integration_email(tenant_id)
                or self.settings.default_from_email
            )
            return self.gmail_channel_factory(tenant_id), from_email

        return self.smtp_channel, self.settings.default_from_email

    def _pending_recipients(self, campaign_id: int) -> list[CampaignRecipient]:
        return list(
            self.db.execute(
                select(CampaignRecipient)
                .options(joinedload(CampaignRecipient.contact))
                .where(
                    CampaignRecipient.campaign_id == campaign_id,
                    CampaignRecipient.status == RecipientStatus.PENDING,
                )
                .order_by(CampaignRecipient.id)
            ).scalars()
        )

    def _check_consent(self, contact: Contact) -> None:
        self.db.refresh(contact)
        if contact.consent_status != ConsentStatus.GRANTED:
            raise ConsentRevoked(CONSENT_REVOKED_MESSAGE)

    async def _send(self, channel: SendChannel, email: OutgoingEmail) -> SendOutcome:
        try:
            return await channel.send(email)
        except CREDENTIAL_ERRORS:
            raise
        except Exception as e:
            return SendOutcome(success=False, error_message=str(e) or type(e).__name__)

    async def dispatch(self, campaign_id: int, tenant_id: str) -> DispatchResult:
        """Send a campaign to its pending recipients, one at a time.

        The campaign ends failed only if every recipient failed at delivery;
        consent revocations and unsubscriptions do not count. Credential
        errors abort the run: recipients already processed keep their state
        and the rest stay pending.

        Raises:
            NotFound: If the campaign does not exist for the tenant.
        """
        campaign = self.find_one(campaign_id, tenant_id)
        context = TenantContext(tenant_id, campaign_id=campaign.id)

        channel, from_email = self.select_channel(tenant_id)
        result = DispatchResult(campaign_id=campaign.id, channel=channel.name)
        logger.info(f"Dispatching campaign via {channel.name}", context)

        recipients = self._pending_recipients(campaign.id)
        if not recipients:
            logger.info("No pending recipients", context)
            result.status = campaign.status
            return result

        last_index = len(recipients) - 1
        for index, recipient in enumerate(recipients):
            self.db.refresh(recipient)
            if recipient.status != RecipientStatus.PENDING:
                result.skipped += 1
                continue

            contact = recipient.contact
            try:
                self._check_consent(contact)
            except ConsentRevoked as e:
                recipient.status = RecipientStatus.FAILED
                recipient.error_message = str(e)
                self.db.commit()
                result.consent_revoked += 1
                continue

            email = OutgoingEmail(
                to=contact.email,
                subject=campaign.subject,
                html=append_unsubscribe_link(
                    campaign.body_html,
                    self.settings.web_app_url,
                    recipient.unsubscribe_token,
                ),
                from_email=from_email,
                from_name=self.settings.email_from_name,
            )

            outcome = await self._send(channel, email)
            if outcome.success:
                recipient.status = RecipientStatus.SENT
                recipient.sent_at = utcnow()
                recipient.error_message = None
                result.sent += 1
            else:
                recipient.status = RecipientStatus.FAILED
                recipient.error_message = outcome.error_message or "Unknown error"
                result.failed += 1
            self.db.commit()

            if index < last_index:
                await self._sleep(self.settings.dispatch_throttle_seconds)

        all_failed = result.failed == len(recipients)
        campaign.status = CampaignStatus.FAILED if all_failed else CampaignStatus.SENT
        campaign.sent_at = utcnow()
        self.db.commit()

        result.status = campaign.status
        logger.info(
            "Campaign dispatch completed",
            context,
            channel=channel.name,
            sent=result.sent,
            failed=result.failed,
            consent_revoked=result.consent_revoked,
            status=campaign.status,
        )
        return result

    # -------------------------------------------------------------------------
    # Reporting / scheduling
    # -------------------------------------------------------------------------

    def get_report(self, campaign_id: int, tenant_id: str) -> CampaignReport:
        """Per-recipient report with counts.

        skipped counts unsubscribed recipients and those failed for revoked
        consent; failed counts the remaining failures.
        """
        campaign = self.find_one(campaign_id, tenant_id)
        recipients = list(
            self.db.execute(
                select(CampaignRecipient)
                .options(joinedload(CampaignRecipient.contact))
                .where(CampaignRecipient.campaign_id == campaign.id)
                .order_by(CampaignRecipient.id)
            ).scalars()
        )

        stats = CampaignStats(total=len(recipients))
        for r in recipients:
            if r.status == RecipientStatus.PENDING:
                stats.pending += 1
            elif r.status == RecipientStatus.SENT:
                stats.sent += 1
            elif r.status == RecipientStatus.SKIPPED_UNSUBSCRIBED:
                stats.skipped += 1
            elif r.status == RecipientStatus.FAILED:
                if r.error_message == CONSENT_REVOKED_MESSAGE:
                    stats.skipped += 1
                else:
                    stats.failed += 1

        return CampaignReport(
            campaign_id=campaign.id,
            name=campaign.name,
            subject=campaign.subject,
            status=campaign.status,
            sent_at=campaign.sent_at,
            stats=stats,
            recipients=[
                RecipientReport(
                    id=r.id,
                    contact_id=r.contact.id,
                    email=r.contact.email,
                    first_name=r.contact.first_name,
                    last_name=r.contact.last_name,
                    status=r.status,
                    sent_at=r.sent_at,
                    error_message=r.error_message,
                )
                for r in recipients
            ],
        )

    def count_recipients(self, campaign_id: int, status: Optional[str] = None) -> int:
        query = select(func.count(CampaignRecipient.id)).where(
            CampaignRecipient.campaign_id == campaign_id
        )
        if status:
            query = query.where(CampaignRecipient.status == status)
        return self.db.execute(query).scalar_one()

    def process_scheduled_campaigns(self, now: Optional[datetime] = None) -> list[EnqueueResult]:
        """Enqueue draft campaigns whose scheduled time has passed.

        A campaign that fails to enqueue is marked failed.
        """
        now = now or utcnow()
        due = list(
            self.db.execute(
                select(Campaign)
                .where(
                    Campaign.status == CampaignStatus.DRAFT,
                    Campaign.scheduled_at.is_not(None),
                    Campaign.scheduled_at <= now,
                )
                .order_by(Campaign.scheduled_at, Campaign.id)
            ).scalars()
        )
        if not due:
            logger.debug("No scheduled campaigns due")
            return []

        logger.info(f"Found {len(due)} scheduled campaign(s) to send")
        results = []
        for campaign in due:
            context = TenantContext(campaign.tenant_id, campaign_id=campaign.id)
            try:
                results.append(self.enqueue_sending(campaign.id, campaign.tenant_id))
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to enqueue scheduled campaign: {e}", context)
                campaign.status = CampaignStatus.FAILED
                self.db.commit()
        return results
