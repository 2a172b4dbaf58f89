"""Domain models for revWave.

This module defines the SQLAlchemy ORM models for integrations, synced
business data (locations, reviews, replies) and email campaigns.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class IntegrationStatus(str):
    """Integration status values."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class ReplyStatus(str):
    """Derived review reply status values."""

    PENDING = "pending"
    DRAFTED = "drafted"
    REPLIED = "replied"


class ConsentStatus(str):
    """Contact consent status values."""

    GRANTED = "granted"
    REVOKED = "revoked"
    PENDING = "pending"


class CampaignStatus(str):
    """Campaign status values."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENT = "sent"
    FAILED = "failed"


class RecipientStatus(str):
    """Campaign recipient status values."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED_UNSUBSCRIBED = "skipped_unsubscribed"


# Provider name for the Google Business Profile integration
GOOGLE_BUSINESS_PROVIDER = "google_business"


# =============================================================================
# MODELS
# =============================================================================


class Integration(Base):
    """Per-tenant, per-provider OAuth connection.

    Owns the encrypted token material. At most one row per
    (tenant_id, provider).
    """

    __tablename__ = "integrations"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=IntegrationStatus.CONNECTED
    )

    # Encrypted with CryptoService (nonce:tag:ciphertext)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    scopes: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    # Opaque provider metadata, e.g. {"email": "owner@example.com"}
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "provider", name="uq_integration_tenant_provider"),
        Index("idx_integration_tenant", "tenant_id"),
    )

    # Relationships
    locations: Mapped[list["Location"]] = relationship(back_populates="integration")


class Location(Base):
    """Business location synced from the provider."""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    website_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    integration_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("integration_id", "external_id", name="uq_location_external"),
        Index("idx_location_tenant", "tenant_id"),
    )

    # Relationships
    integration: Mapped["Integration"] = relationship(back_populates="locations")
    reviews: Mapped[list["Review"]] = relationship(back_populates="location")


class Review(Base):
    """Customer review synced from the provider.

    replied_status is derived: the sync reconciler and reply creation own it.
    """

    __tablename__ = "reviews"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    reviewer_avatar: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    published_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    replied_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ReplyStatus.PENDING
    )
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    location_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("location_id", "external_id", name="uq_review_external"),
        Index("idx_review_tenant", "tenant_id"),
        Index("idx_review_replied_status", "replied_status"),
    )

    # Relationships
    location: Mapped["Location"] = relationship(back_populates="reviews")
    replies: Mapped[list["Reply"]] = relationship(back_populates="review")


class Reply(Base):
    """Reply to a review (draft or published). A review keeps its reply history."""

    __tablename__ = "replies"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    published_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ai_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_model: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    review_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (Index("idx_reply_review", "review_id"),)

    # Relationships
    review: Mapped["Review"] = relationship(back_populates="replies")


class Contact(Base):
    """CRM contact that campaigns are sent to."""

    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="manual")

    consent_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ConsentStatus.PENDING
    )
    consent_timestamp: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    consent_source: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_contact_email"),
        Index("idx_contact_consent", "tenant_id", "consent_status"),
    )

    # Relationships
    campaign_recipients: Mapped[list["CampaignRecipient"]] = relationship(
        back_populates="contact"
    )


class Campaign(Base):
    """Email campaign."""

    __tablename__ = "campaigns"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(998), nullable=False)
    body_html: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=CampaignStatus.DRAFT
    )
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_campaign_tenant", "tenant_id"),
        Index("idx_campaign_status_scheduled", "status", "scheduled_at"),
    )

    # Relationships
    recipients: Mapped[list["CampaignRecipient"]] = relationship(back_populates="campaign")


class CampaignRecipient(Base):
    """Per-contact delivery attempt for a campaign.

    pending is the only non-terminal status.
    """

    __tablename__ = "campaign_recipients"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False
    )
    contact_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(24), nullable=False, default=RecipientStatus.PENDING
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    unsubscribe_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("campaign_id", "contact_id", name="uq_recipient_contact"),
        Index("idx_recipient_campaign_status", "campaign_id", "status"),
    )

    # Relationships
    campaign: Mapped["Campaign"] = relationship(back_populates="recipients")
    contact: Mapped["Contact"] = relationship(back_populates="campaign_recipients")
