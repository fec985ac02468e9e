"""
SQLAlchemy engine and session handling for the clinic record store.
"""
from __future__ import annotations

import os
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger("rxprint.db")


def _normalize_url(url: str) -> str:
    # Hosted Postgres hands out postgres:// URLs; SQLAlchemy 2.0 only accepts postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


DATABASE_URL = _normalize_url(os.environ.get("DATABASE_URL", "sqlite:///./data/rxprint.db"))
engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def _ensure_sqlite_dir() -> None:
    url = make_url(DATABASE_URL)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return
    Path(url.database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def init_db() -> None:
    """Create the visit/prescription/patient/doctor tables if missing."""
    from packages.db.models import Base  # noqa: F811
    _ensure_sqlite_dir()
    Base.metadata.create_all(bind=engine)
    logger.info(f"Record store ready ({make_url(DATABASE_URL).get_backend_name()})")


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Yield a session; commit on success, roll back on any error."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency wrapping get_session()."""
    with get_session() as session:
        yield session
