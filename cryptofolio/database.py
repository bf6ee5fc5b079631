"""
cryptofolio/database.py

SQLAlchemy wiring for Cryptofolio:
- engine and session factory for the configured database (SQLite by default)
- UTCDateTime, a column type that keeps every timestamp in UTC
- get_db(), the per-request session dependency
- create_tables(), run at startup; only adds missing tables

Accounts are not seeded here; users sign up through /api/users/register.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.types import TypeDecorator, String

from cryptofolio import config

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Engine / sessions
# ------------------------------------------------------------------
DATABASE_URL = config.DATABASE_URL

_is_sqlite = DATABASE_URL.startswith("sqlite")
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

Base = declarative_base()


# ------------------------------------------------------------------
# Column types
# ------------------------------------------------------------------
class UTCDateTime(TypeDecorator):
    """
    Timestamp column stored as an ISO-8601 string ending in 'Z'.

    SQLite has no timezone-aware datetime type, so values are normalized to
    UTC on the way in and come back offset-aware. The fixed format also
    keeps ORDER BY on the text column chronological.
    """
    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
        return value.isoformat().replace("+00:00", "Z")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ------------------------------------------------------------------
# Dependencies / setup
# ------------------------------------------------------------------
def get_db():
    """Yield one session per request and always close it."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def create_tables():
    # Registers every model on Base.metadata before creating tables.
    from cryptofolio.models import user, wallet, transaction, price  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Tables ready at {DATABASE_URL}")
