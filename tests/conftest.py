"""Pytest configuration and fixtures for revWave tests.

This module provides fixtures for:
- Settings: safe test configuration with a fresh encryption key
- Database: SQLite in-memory engine and session
- Factories: integrations, contacts and campaigns
- Fakes: token refresher and send channel
"""

import os
from collections.abc import Generator
from datetime import timedelta
from typing import Optional

import pytest
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from revwave_core.config import Settings
from revwave_core.domain.models import (
    Base,
    Campaign,
    CampaignStatus,
    ConsentStatus,
    Contact,
    GOOGLE_BUSINESS_PROVIDER,
    Integration,
    IntegrationStatus,
    utcnow,
)
from revwave_core.infrastructure.crypto import CryptoService
from revwave_core.providers.email.base import OutgoingEmail, SendOutcome
from revwave_core.providers.google.oauth import RefreshedToken

# Set test environment variables before the worker imports celery_app
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def encryption_key() -> str:
    return CryptoService.generate_key()


@pytest.fixture
def test_settings(encryption_key) -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        database_url="sqlite+pysqlite:///:memory:",
        celery_broker_url="memory://",
        celery_result_backend="cache+memory://",
        encryption_key=encryption_key,
        google_client_id="test_client_id",
        google_client_secret="test_client_secret",
        google_redirect_uri="https://app.revwave.test/integrations/google/callback",
        smtp_host="smtp.test.local",
        smtp_port=587,
        smtp_user="mailer@revwave.test",
        smtp_password="smtp-password",
        email_from="campaigns@revwave.test",
        web_app_url="https://app.revwave.test",
        dispatch_throttle_seconds=0.1,
        log_json=False,
    )


@pytest.fixture
def crypto(encryption_key) -> CryptoService:
    return CryptoService(encryption_key)


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # SQLite only autoincrements INTEGER PRIMARY KEY, so compile BigInteger
    # as INTEGER while the tables are created
    from sqlalchemy.dialects import sqlite

    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# Fakes
# -----------------------------------------------------------------------------


class FakeRefresher:
    """Token refresher returning canned tokens or raising a canned error."""

    def __init__(self, access_token: str = "refreshed-access-token", error: Optional[Exception] = None):
        self.access_token = access_token
        self.error = error
        self.calls: list[str] = []

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        self.calls.append(refresh_token)
        if self.error is not None:
            raise self.error
        return RefreshedToken(
            access_token=self.access_token,
            expires_at=utcnow() + timedelta(hours=1),
        )


class FakeChannel:
    """Send channel with a scripted sequence of outcomes."""

    def __init__(self, outcomes: Optional[list] = None, name: str = "fake"):
        self.name = name
        self.outcomes = list(outcomes or [])
        self.sent: list[OutgoingEmail] = []

    async def send(self, email: OutgoingEmail) -> SendOutcome:
        self.sent.append(email)
        outcome = self.outcomes.pop(0) if self.outcomes else SendOutcome(success=True)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def fake_refresher() -> FakeRefresher:
    return FakeRefresher()


# -----------------------------------------------------------------------------
# Factories
# -----------------------------------------------------------------------------


@pytest.fixture
def make_integration(db_session, crypto):
    """Factory for Integration rows with encrypted tokens."""

    def _make(
        tenant_id: str = "tenant-1",
        status: str = IntegrationStatus.CONNECTED,
        access_token: Optional[str] = "stored-access-token",
        refresh_token: Optional[str] = "stored-refresh-token",
        expires_in: Optional[timedelta] = timedelta(hours=1),
        scopes: Optional[list[str]] = None,
        metadata: Optional[dict] = None,
    ) -> Integration:
        integration = Integration(
            tenant_id=tenant_id,
            provider=GOOGLE_BUSINESS_PROVIDER,
            status=status,
            access_token=crypto.encrypt(access_token) if access_token else None,
            refresh_token=crypto.encrypt(refresh_token) if refresh_token else None,
            token_expires_at=utcnow() + expires_in if expires_in is not None else None,
            scopes=scopes or ["https://www.googleapis.com/auth/business.manage"],
            metadata_json=metadata,
        )
        db_session.add(integration)
        db_session.commit()
        return integration

    return _make


@pytest.fixture
def make_contact(db_session):
    """Factory for Contact rows."""
    counter = {"n": 0}

    def _make(
        tenant_id: str = "tenant-1",
        consent_status: str = ConsentStatus.GRANTED,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
    ) -> Contact:
        counter["n"] += 1
        contact = Contact(
            tenant_id=tenant_id,
            email=email or f"contact{counter['n']}@example.com",
            first_name=first_name,
            consent_status=consent_status,
        )
        db_session.add(contact)
        db_session.commit()
        return contact

    return _make


@pytest.fixture
def make_campaign(db_session):
    """Factory for Campaign rows."""

    def _make(
        tenant_id: str = "tenant-1",
        status: str = CampaignStatus.DRAFT,
        scheduled_at=None,
        name: str = "Spring promo",
    ) -> Campaign:
        campaign = Campaign(
            tenant_id=tenant_id,
            name=name,
            subject="Thanks for visiting!",
            body_html="<p>Leave us a review</p>",
            status=status,
            scheduled_at=scheduled_at,
        )
        db_session.add(campaign)
        db_session.commit()
        return campaign

    return _make


@pytest.fixture
def refresher_factory():
    """Build FakeRefresher instances with custom tokens or errors."""
    return FakeRefresher


@pytest.fixture
def channel_factory():
    """Build FakeChannel instances with scripted outcomes."""
    return FakeChannel
