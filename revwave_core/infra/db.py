"""Database infrastructure for revWave core."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from revwave_core.config import get_settings


def get_sync_engine():
    """Get synchronous database engine."""
    settings = get_settings()
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )


# Session factory
_sync_engine = None
_sync_session_factory = None


def get_sync_session_factory() -> sessionmaker[Session]:
    """Get synchronous session factory (singleton)."""
    global _sync_engine, _sync_session_factory
    if _sync_session_factory is None:
        _sync_engine = get_sync_engine()
        _sync_session_factory = sessionmaker(
            bind=_sync_engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _sync_session_factory


@contextmanager
def session_scope() -> Iterator[Session]:
    """Context manager for a session that commits on success and rolls back on error."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
