"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - UTCDateTime: DateTime column type that always hands back aware UTC values
  - get_db(): FastAPI dependency that provides a session per request

Transfers do NOT use get_db(). The transfer orchestrator opens its own
units of work from the session factory so that it controls exactly when
a transaction begins, commits, or rolls back (see services/ledger_store.py).

SQLite note:
  pysqlite/aiosqlite defer BEGIN until the first write, which lets two
  connections both read and then race to upgrade to a write lock. We take
  over transaction start and emit BEGIN IMMEDIATE instead, so every unit of
  work holds the database write lock from its first statement. Other
  backends are left untouched.

Lock waits:
  The driver is told to give up waiting on another connection's lock
  after LOCK_TIMEOUT_SECONDS (SQLite's busy timeout, PostgreSQL's
  lock_timeout). The unit of work turns that failure into
  LockTimeoutError.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from ledger_engine.config import settings


def configure_sqlite_locking(engine: AsyncEngine) -> None:
    """Make every SQLite transaction start with BEGIN IMMEDIATE."""
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        # Stop the driver from emitting its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def engine_connect_args(database_url: str, lock_timeout: float) -> dict:
    """Driver options bounding how long a connection waits on a lock held elsewhere."""
    if database_url.startswith("sqlite"):
        # Seconds sqlite3 keeps retrying while the database is locked
        return {"timeout": lock_timeout}
    if database_url.startswith("postgresql+asyncpg"):
        # Milliseconds; 0 would mean wait forever
        return {"server_settings": {"lock_timeout": str(max(1, int(lock_timeout * 1000)))}}
    return {}


# echo=True in debug mode logs all SQL statements
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    connect_args=engine_connect_args(settings.DATABASE_URL, settings.LOCK_TIMEOUT_SECONDS),
)
configure_sqlite_locking(engine)

# expire_on_commit=False prevents lazy-load errors after commit in async code
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware DateTime that survives a round trip through SQLite.

    SQLite has no timezone support and returns naive datetimes. All
    timestamps in the ledger are written in UTC, so naive values coming
    back from the database are re-tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


async def get_db():
    """
    FastAPI dependency that provides a database session.

    The session is committed on success and rolled back on any exception,
    then closed when the request completes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
