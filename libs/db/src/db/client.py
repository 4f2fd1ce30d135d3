"""SQLAlchemy engine/session helpers for the workspace database.

Handles are explicit: callers create an engine and pass it around. There is
no module-level engine or session factory.

Usage
-----
from db.client import create_db_engine, session_scope

engine = create_db_engine()          # reads DATABASE_URL
with session_scope(engine) as s:
    s.execute(...)
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return url


def create_db_engine(database_url: str | None = None, *, create_schema: bool = False) -> Engine:
    """Create an engine for ``database_url`` (or ``DATABASE_URL``).

    With ``create_schema`` the analytics tables are created when missing.
    """

    engine = create_engine(_database_url(database_url), pool_pre_ping=True)
    if create_schema:
        from .models import Base

        Base.metadata.create_all(bind=engine)
    return engine


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    factory = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "create_db_engine",
    "session_scope",
]
