"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (SQLite in-memory uses a StaticPool)
- Table definitions shared by the stores
"""
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional, Generator

from sqlalchemy import (
    create_engine,
    MetaData,
    Table,
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    Numeric,
    Text,
    Index,
    CheckConstraint,
    text,
    false,
)
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func

from finbot.core.config import settings


logger = logging.getLogger("finbot")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; every stored value is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def dispose_engine() -> None:
    """Drop the global engine (tests swap databases between runs)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
            session.commit()
    """
    SessionLocal = get_session_factory()
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
    """FastAPI-friendly DB dependency that yields a Session and closes it.

    Use this with `Depends(get_db)` in route functions to ensure the session
    lifecycle works with both sync and async endpoints under FastAPI.
    """
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)
    apply_schema_upgrades(engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def apply_schema_upgrades(engine=None) -> None:
    """Idempotent upgrades for databases created before the reminder flag existed.

    The appointments table is owned by the calendar screens; older copies lack
    reminder_sent. Postgres only, SQLite databases are always created fresh.
    """
    eng = engine or get_engine()
    if eng.dialect.name != "postgresql":
        return
    with eng.connect() as conn:
        conn.execute(
            text(
                """
                ALTER TABLE appointments
                ADD COLUMN IF NOT EXISTS reminder_sent BOOLEAN NOT NULL DEFAULT false;
                """
            )
        )
        conn.commit()
    logger.info("[database] schema upgrades applied")


# Accounts with the embedded plan entitlement
accounts = Table(
    'accounts',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('email', String(320), nullable=False),  # written case-folded, matched on lower(email)
    Column('name', Text, nullable=True),
    Column('phone', String(50), nullable=True),
    Column('is_admin', Boolean, nullable=False, default=False, server_default=false()),
    Column('blocked', Boolean, nullable=False, default=False, server_default=false()),
    Column('plan_tier', String(20), nullable=False, default='none', server_default='none'),
    Column('plan_expires_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    CheckConstraint(
        "plan_tier IN ('none', 'trial', 'bronze', 'ouro')",
        name='ck_accounts_plan_tier',
    ),
    CheckConstraint(
        "plan_tier <> 'none' OR plan_expires_at IS NULL",
        name='ck_accounts_none_has_no_expiry',
    ),
    Index('idx_accounts_plan_expiry', 'plan_tier', 'plan_expires_at'),
)

# Email is a case-insensitive key, rows written by other flows may keep their original case
Index('uq_accounts_email_lower', func.lower(accounts.c.email), unique=True)

# Sale ledger (append-only)
sales = Table(
    'sales',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('email', String(320), nullable=False, index=True),
    Column('plan_tier', String(20), nullable=False),
    Column('duration_label', String(50), nullable=False),  # "365 dias"
    Column('amount', Numeric(12, 2), nullable=False),
    Column('sold_at', DateTime(timezone=True), nullable=False),
    Column('transaction_id', String(200), nullable=True, index=True),
    Column('product_label', Text, nullable=True),
    Column('offer_label', Text, nullable=True),
    Index('idx_sales_sold_at', 'sold_at'),
)

# Operator-declared fan-out routes
webhook_subscriptions = Table(
    'webhook_subscriptions',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('url', Text, nullable=False),
    Column('event_type', String(50), nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_webhook_subscriptions_event_type', 'event_type'),
)

# Calendar appointments (written by the calendar screens, acked by the reminder scanner)
appointments = Table(
    'appointments',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(36), nullable=False, index=True),
    Column('title', Text, nullable=False),
    Column('description', Text, nullable=True),
    Column('date', String(10), nullable=True),  # YYYY-MM-DD, local calendar date
    Column('time', String(8), nullable=True),  # HH:MM[:SS], local time-of-day
    Column('location', Text, nullable=True),
    Column('category', String(100), nullable=True),
    Column('reminder_sent', Boolean, nullable=False, default=False, server_default=false()),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_appointments_reminder_pending', 'reminder_sent', 'date'),
)
