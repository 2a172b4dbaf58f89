"""Service construction for worker tasks.

Tasks build their services here from the process settings, so every
component receives its configuration explicitly.
"""

from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from revwave_core.config import Settings, get_settings
from revwave_core.domain.services.campaigns import CampaignService
from revwave_core.domain.services.dispatch_queue import DispatchQueue
from revwave_core.domain.services.sync import GoogleSyncService
from revwave_core.domain.services.tokens import TokenManager
from revwave_core.infrastructure.crypto import CryptoService
from revwave_core.providers.google.client import ApiClient
from revwave_core.providers.google.oauth import (
    GoogleAuthTokenRefresher,
    HttpTokenRefresher,
    TokenRefresher,
)


def get_db_session() -> Session:
    """Open a database session for task execution."""
    from revwave_core.infra.db import get_sync_session_factory

    return get_sync_session_factory()()


def build_refresher(settings: Settings) -> TokenRefresher:
    """Token refresher selected by settings.token_refresher."""
    client_id = settings.google_client_id or ""
    client_secret = settings.google_client_secret or ""

    if settings.token_refresher == "google_auth":
        return GoogleAuthTokenRefresher(client_id, client_secret)
    if settings.token_refresher == "http":
        return HttpTokenRefresher(
            client_id, client_secret, timeout=settings.api_timeout_seconds
        )
    raise ValueError(f"Unknown token refresher: {settings.token_refresher}")


def build_token_manager(db: Session, settings: Optional[Settings] = None) -> TokenManager:
    settings = settings or get_settings()
    return TokenManager(
        db=db,
        crypto=CryptoService(settings.encryption_key),
        refresher=build_refresher(settings),
        refresh_buffer=timedelta(seconds=settings.token_refresh_buffer_seconds),
    )


def build_sync_service(db: Session, settings: Optional[Settings] = None) -> GoogleSyncService:
    settings = settings or get_settings()
    return GoogleSyncService(
        db=db,
        token_manager=build_token_manager(db, settings),
        api=ApiClient(timeout=settings.api_timeout_seconds),
    )


def build_campaign_service(
    db: Session,
    settings: Optional[Settings] = None,
    dispatch_queue: Optional[DispatchQueue] = None,
) -> CampaignService:
    settings = settings or get_settings()
    return CampaignService(
        db=db,
        settings=settings,
        token_manager=build_token_manager(db, settings),
        dispatch_queue=dispatch_queue,
    )


def error_result(exc: Exception, **fields: Any) -> dict:
    """JSON task result for a failed operation."""
    return {
        "status": "error",
        "error": str(exc),
        "error_kind": getattr(exc, "kind", type(exc).__name__),
        **fields,
    }
