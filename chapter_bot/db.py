"""Database engine and session utilities."""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from chapter_bot.config import get_settings

Base = declarative_base()


def _connect_args(database_url: str) -> Dict[str, Any]:
    # Webhook batches and admin fan-out run on the background pool, not the request thread.
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


@lru_cache()
def get_engine() -> Engine:
    """Create or return the cached engine shared by webhooks and scheduled jobs."""

    settings = get_settings()
    return create_engine(
        settings.database_url,
        future=True,
        echo=False,
        pool_pre_ping=True,
        connect_args=_connect_args(settings.database_url),
    )


@lru_cache()
def get_session_factory() -> sessionmaker[Session]:
    """Return a cached session factory.

    Rows loaded inside a scope are read after it closes (participant and
    meeting summaries handed to the reply builders), so commits do not expire
    them.
    """

    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, future=True, expire_on_commit=False)


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope for DB operations."""

    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
