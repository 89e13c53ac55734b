"""
SQLAlchemy engine, session factory and declarative base for the events
database. PostgreSQL in production; SQLite is accepted for local runs.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator

from core.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict:
    """Pool options for the configured backend (SQLite has no connection pool sizing)."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
    }


engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Request-scoped session for FastAPI dependencies.

    Services commit explicitly; whatever is left uncommitted when the
    request ends is rolled back by close().
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create all tables registered on Base (idempotent)."""
    # Import models so they are registered with Base
    import models.event  # noqa: F401
    import models.user  # noqa: F401

    Base.metadata.create_all(bind=engine)
