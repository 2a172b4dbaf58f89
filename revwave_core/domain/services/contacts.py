"""Contact service for campaign audiences.

Contacts are only created with granted consent and a consent timestamp.
Revoking consent keeps the original timestamp, so it still records when
consent was first given. Campaign dispatch re-reads consent before every
send, so a revocation here takes effect for campaigns already enqueued.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from revwave_core.domain.errors import ConsentRequired, ContactExists, NotFound
from revwave_core.domain.models import CampaignRecipient, ConsentStatus, Contact
from revwave_core.observability import TenantContext, get_logger

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# status filter -> consent status
STATUS_FILTERS = {
    "subscribed": ConsentStatus.GRANTED,
    "unsubscribed": ConsentStatus.REVOKED,
    "all": None,
}


@dataclass
class ContactPage:
    """One page of a tenant's contacts."""

    contacts: list[Contact] = field(default_factory=list)
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next_page(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1


class ContactService:
    """Service for CRM contacts."""

    def __init__(self, db: Session):
        self.db = db

    def _find_by_email(self, tenant_id: str, email: str) -> Optional[Contact]:
        return self.db.execute(
            select(Contact).where(Contact.tenant_id == tenant_id, Contact.email == email)
        ).scalar_one_or_none()

    def find_one(self, contact_id: int, tenant_id: str) -> Contact:
        """Get a tenant's contact.

        Raises:
            NotFound: If the contact does not exist for the tenant.
        """
        contact = self.db.execute(
            select(Contact).where(Contact.id == contact_id, Contact.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if contact is None:
            raise NotFound(f"Contact {contact_id} not found")
        return contact

    def list_contacts(
        self,
        tenant_id: str,
        status: str = "all",
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ContactPage:
        """List a tenant's contacts, newest first.

        Args:
            tenant_id: Owning tenant.
            status: "subscribed", "unsubscribed" or "all".
            page: 1-based page number.
            limit: Page size, capped at MAX_PAGE_SIZE.
        """
        if status not in STATUS_FILTERS:
            raise ValueError(f"Unknown contact status filter: {status}")

        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        criteria = [Contact.tenant_id == tenant_id]
        consent_status = STATUS_FILTERS[status]
        if consent_status is not None:
            criteria.append(Contact.consent_status == consent_status)

        total = self.db.execute(
            select(func.count(Contact.id)).where(*criteria)
        ).scalar_one()
        contacts = list(
            self.db.execute(
                select(Contact)
                .where(*criteria)
                .order_by(Contact.created_at.desc(), Contact.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars()
        )
        return ContactPage(contacts=contacts, page=page, limit=limit, total=total)

    def create(
        self,
        tenant_id: str,
        email: str,
        consent_status: str,
        consent_timestamp: Optional[datetime],
        source: str = "manual",
        consent_source: Optional[str] = None,
        phone: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Contact:
        """Create a contact with granted consent.

        Raises:
            ConsentRequired: If consent is not granted or has no timestamp.
            ContactExists: If the tenant already has a contact with this email.
        """
        if consent_status != ConsentStatus.GRANTED:
            raise ConsentRequired(
                "Cannot create contact without granted consent. "
                f'consent_status must be "{ConsentStatus.GRANTED}".'
            )
        if consent_timestamp is None:
            raise ConsentRequired("consent_timestamp is required when creating a contact.")

        if self._find_by_email(tenant_id, email) is not None:
            raise ContactExists(f"Contact with email {email} already exists for this tenant.")

        contact = Contact(
            tenant_id=tenant_id,
            email=email,
            phone=phone,
            first_name=first_name,
            last_name=last_name,
            source=source,
            consent_status=consent_status,
            consent_timestamp=consent_timestamp,
            consent_source=consent_source,
        )
        self.db.add(contact)
        self.db.commit()
        self.db.refresh(contact)

        logger.info("Created contact", TenantContext(tenant_id), contact_id=contact.id, source=source)
        return contact

    def update(
        self,
        contact_id: int,
        tenant_id: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Contact:
        """Update contact details. Fields left as None are unchanged.

        Consent is not editable here; use revoke_consent.

        Raises:
            NotFound: If the contact does not exist for the tenant.
            ContactExists: If another contact of the tenant has the new email.
        """
        contact = self.find_one(contact_id, tenant_id)

        if email is not None and email != contact.email:
            existing = self._find_by_email(tenant_id, email)
            if existing is not None and existing.id != contact.id:
                raise ContactExists(
                    f"Contact with email {email} already exists for this tenant."
                )
            contact.email = email
        if phone is not None:
            contact.phone = phone
        if first_name is not None:
            contact.first_name = first_name
        if last_name is not None:
            contact.last_name = last_name

        self.db.commit()
        self.db.refresh(contact)

        logger.info("Updated contact", TenantContext(tenant_id), contact_id=contact.id)
        return contact

    def revoke_consent(self, contact_id: int, tenant_id: str) -> Contact:
        """Revoke a contact's consent, blocking future sends.

        An already revoked contact is returned unchanged. The consent
        timestamp is kept.

        Raises:
            NotFound: If the contact does not exist for the tenant.
        """
        contact = self.find_one(contact_id, tenant_id)
        context = TenantContext(tenant_id)

        if contact.consent_status == ConsentStatus.REVOKED:
            logger.warning("Contact consent already revoked", context, contact_id=contact.id)
            return contact

        contact.consent_status = ConsentStatus.REVOKED
        self.db.commit()
        self.db.refresh(contact)

        logger.info("Revoked contact consent", context, contact_id=contact.id)
        return contact

    def get_campaign_history(self, contact_id: int, tenant_id: str) -> list[CampaignRecipient]:
        """Campaign deliveries for a contact, newest first, with campaigns loaded.

        Raises:
            NotFound: If the contact does not exist for the tenant.
        """
        contact = self.find_one(contact_id, tenant_id)
        return list(
            self.db.execute(
                select(CampaignRecipient)
                .options(joinedload(CampaignRecipient.campaign))
                .where(CampaignRecipient.contact_id == contact.id)
                .order_by(CampaignRecipient.created_at.desc(), CampaignRecipient.id.desc())
            ).scalars()
        )
