"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates all tables for revWave core:
- integrations
- locations
- reviews
- replies
- contacts
- campaigns
- campaign_recipients
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # Integrations table
    op.create_table(
        "integrations",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="connected"),
        sa.Column("access_token", sa.Text, nullable=True),
        sa.Column("refresh_token", sa.Text, nullable=True),
        sa.Column("token_expires_at", sa.DateTime, nullable=True),
        sa.Column("scopes", sa.JSON, nullable=True),
        sa.Column("metadata", sa.JSON, nullable=True),
        sa.Column("last_sync_at", sa.DateTime, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "provider", name="uq_integration_tenant_provider"),
    )
    op.create_index("idx_integration_tenant", "integrations", ["tenant_id"])

    # Locations table
    op.create_table(
        "locations",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("phone_number", sa.String(64), nullable=True),
        sa.Column("website_url", sa.String(512), nullable=True),
        sa.Column("metadata", sa.JSON, nullable=True),
        sa.Column("integration_id", sa.BigInteger, nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["integration_id"],
            ["integrations.id"],
            name="fk_location_integration",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("integration_id", "external_id", name="uq_location_external"),
    )
    op.create_index("idx_location_tenant", "locations", ["tenant_id"])

    # Reviews table
    op.create_table(
        "reviews",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("content", sa.Text, nullable=True),
        sa.Column("reviewer_name", sa.String(255), nullable=False),
        sa.Column("reviewer_avatar", sa.String(1024), nullable=True),
        sa.Column("published_at", sa.DateTime, nullable=False),
        sa.Column("replied_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("metadata", sa.JSON, nullable=True),
        sa.Column("location_id", sa.BigInteger, nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["location_id"], ["locations.id"], name="fk_review_location", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("location_id", "external_id", name="uq_review_external"),
    )
    op.create_index("idx_review_tenant", "reviews", ["tenant_id"])
    op.create_index("idx_review_replied_status", "reviews", ["replied_status"])

    # Replies table
    op.create_table(
        "replies",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("is_draft", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("published_at", sa.DateTime, nullable=True),
        sa.Column("published_by", sa.String(64), nullable=True),
        sa.Column("ai_generated", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("ai_model", sa.String(128), nullable=True),
        sa.Column("review_id", sa.BigInteger, nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["review_id"], ["reviews.id"], name="fk_reply_review", ondelete="CASCADE"
        ),
    )
    op.create_index("idx_reply_review", "replies", ["review_id"])

    # Contacts table
    op.create_table(
        "contacts",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("first_name", sa.String(128), nullable=True),
        sa.Column("last_name", sa.String(128), nullable=True),
        sa.Column("source", sa.String(32), nullable=False, server_default="manual"),
        sa.Column("consent_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column(
            "consent_timestamp", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column("consent_source", sa.String(64), nullable=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "email", name="uq_contact_email"),
    )
    op.create_index("idx_contact_consent", "contacts", ["tenant_id", "consent_status"])

    # Campaigns table
    op.create_table(
        "campaigns",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(998), nullable=False),
        sa.Column("body_html", sa.Text, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("scheduled_at", sa.DateTime, nullable=True),
        sa.Column("sent_at", sa.DateTime, nullable=True),
        sa.Column("created_by_user_id", sa.String(64), nullable=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_campaign_tenant", "campaigns", ["tenant_id"])
    op.create_index(
        "idx_campaign_status_scheduled", "campaigns", ["status", "scheduled_at"]
    )

    # Campaign recipients table
    op.create_table(
        "campaign_recipients",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("campaign_id", sa.BigInteger, nullable=False),
        sa.Column("contact_id", sa.BigInteger, nullable=False),
        sa.Column("status", sa.String(24), nullable=False, server_default="pending"),
        sa.Column("sent_at", sa.DateTime, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("unsubscribe_token", sa.String(64), nullable=False, unique=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["campaigns.id"], name="fk_recipient_campaign", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["contact_id"], ["contacts.id"], name="fk_recipient_contact", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("campaign_id", "contact_id", name="uq_recipient_contact"),
    )
    op.create_index(
        "idx_recipient_campaign_status", "campaign_recipients", ["campaign_id", "status"]
    )


def downgrade() -> None:
    # Drop tables in reverse order of creation (respecting foreign keys)
    op.drop_table("campaign_recipients")
    op.drop_table("campaigns")
    op.drop_table("contacts")
    op.drop_table("replies")
    op.drop_table("reviews")
    op.drop_table("locations")
    op.drop_table("integrations")
