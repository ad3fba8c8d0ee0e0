"""
Test fixtures for the ledger engine test suite.

This module provides shared fixtures used across all test files:

  - db_engine: Fresh file-backed SQLite database for each test
  - session_factory / db_session: Sessions bound to that database
  - short_wait_session_factory: Sessions that give up quickly on a busy database
  - orchestrator: A TransferOrchestrator bound to the test database
  - open_account: Helper that opens an account with a given balance
  - client: Async HTTP test client using the test database and orchestrator

Key design decisions:
  - Each test gets its own SQLite file under tmp_path rather than an
    in-memory database. In-memory SQLite shares one connection across all
    sessions, which would make concurrent units of work share a single
    transaction. A file gives every unit of work its own connection.
  - The same BEGIN IMMEDIATE configuration as production is applied.
  - We override get_db and get_orchestrator so the application code runs
    exactly as it does in production, just against the test database.
"""

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from ledger_engine import models  # noqa: F401
from ledger_engine.config import Settings
from ledger_engine.database import Base, configure_sqlite_locking, engine_connect_args, get_db
from ledger_engine.dependencies import get_orchestrator
from ledger_engine.main import app
from ledger_engine.models.account import Account, AccountType
from ledger_engine.services import account_service
from ledger_engine.services.transfer_service import TransferOrchestrator


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        HIGH_VALUE_THRESHOLD=Decimal("250000"),
        MEDIUM_THRESHOLD=Decimal("50000"),
        WINDOW_MINUTES=60,
        LOCK_TIMEOUT_SECONDS=5.0,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path, test_settings):
    """Create a fresh async engine with all tables for each test."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"
    engine = create_async_engine(
        url,
        connect_args=engine_connect_args(url, test_settings.LOCK_TIMEOUT_SECONDS),
    )
    configure_sqlite_locking(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def short_wait_session_factory(db_engine):
    """
    Sessions on the test database whose connections give up after 50ms
    when another connection holds the SQLite write lock.
    """
    url = db_engine.url.render_as_string(hide_password=False)
    engine = create_async_engine(url, connect_args=engine_connect_args(url, 0.05))
    configure_sqlite_locking(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def orchestrator(session_factory, test_settings):
    return TransferOrchestrator(session_factory, test_settings)


@pytest.fixture
def open_account(session_factory):
    """
    Open and commit an account.

    Usage:
        account = await open_account("A-001", "50000")
    """

    async def _open(
        account_number: str,
        balance: str | Decimal = "0",
        holder_name: str = "Test Holder",
        account_type: AccountType = AccountType.SAVINGS,
    ) -> Account:
        async with session_factory() as session:
            account = await account_service.open_account(
                session,
                holder_name=holder_name,
                account_type=account_type,
                opening_balance=Decimal(balance),
                account_number=account_number,
            )
            await session.commit()
            return account

    return _open


@pytest.fixture
def fetch_balance(session_factory):
    """Read an account's committed balance in a fresh session."""

    async def _fetch(account_number: str) -> Decimal:
        async with session_factory() as session:
            result = await session.execute(
                select(Account.balance).where(Account.account_number == account_number)
            )
            return result.scalar_one()

    return _fetch


@pytest.fixture
def count_rows(session_factory):
    """Count committed rows of a model, optionally filtered."""

    async def _count(model, *criteria) -> int:
        async with session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(model).where(*criteria)
            )
            return result.scalar_one()

    return _count


@pytest_asyncio.fixture
async def client(session_factory, orchestrator):
    """
    Async HTTP test client with the test database injected.

    ASGITransport does not run the app lifespan, so the orchestrator the
    lifespan would build is provided through a dependency override.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
