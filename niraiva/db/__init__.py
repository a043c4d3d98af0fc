"""Database engine and session helpers.

The engine is created lazily from :func:`niraiva.db.config.get_database_settings`
so tests can swap in an in-memory SQLite engine via :func:`configure_engine`
before the first request is served.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from niraiva.db.config import DatabaseSettings, get_database_settings
from niraiva.db.models import Base

LOGGER = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()


def _create_engine(settings: DatabaseSettings) -> Engine:
    return create_engine(settings.url, **settings.engine_options())


def configure_engine(engine: Engine) -> sessionmaker:
    """Bind the module level session factory to *engine* (used in tests)."""

    global _engine
    global _session_factory

    if engine.dialect.name == "sqlite":
        _enable_sqlite_foreign_keys(engine)
    _engine = engine
    _session_factory = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )
    return _session_factory


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""

    if _engine is None:
        configure_engine(_create_engine(get_database_settings()))
    assert _engine is not None
    return _engine


def _factory() -> sessionmaker:
    if _session_factory is None:
        get_engine()
    assert _session_factory is not None
    return _session_factory


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables known to the ORM metadata."""

    target = engine or get_engine()
    Base.metadata.create_all(target)
    LOGGER.info("database_initialised dialect=%s", target.dialect.name)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a SQLAlchemy session."""

    session: Session = _factory()()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""

    session: Session = _factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "Base",
    "configure_engine",
    "get_engine",
    "get_session",
    "init_db",
    "session_scope",
]
