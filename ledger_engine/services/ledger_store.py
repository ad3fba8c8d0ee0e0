"""
Ledger store — the persistence contract the transfer orchestrator relies on.

Three pieces live here:

  AccountLockRegistry
    Per-process exclusive locks keyed by account id. Locks are always
    acquired in ascending id order, under a single deadline. This prevents
    the classic deadlock where:
      - Transfer A->B locks A, then tries to lock B
      - Transfer B->A locks B, then tries to lock A
    If the deadline passes, LockTimeoutError is raised and every lock
    taken so far is released.

  UnitOfWork
    An explicit transaction boundary wrapping one AsyncSession. commit()
    is the only way work becomes durable; leaving the block any other way
    rolls everything back. SQLAlchemy errors escaping the block are
    re-raised as StorageError, or as LockTimeoutError when the database
    gave up waiting on a lock.

  LedgerStore
    Session-bound reads and writes: locked re-read of account rows
    (SELECT ... FOR UPDATE), balance updates, transaction append, the
    recent-debit window query, and alert / audit appends.

SQLite note:
  SQLite doesn't support SELECT ... FOR UPDATE. The with_for_update()
  call is a no-op there and the registry provides mutual exclusion within
  the process. On PostgreSQL the row lock additionally protects against
  other processes.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_engine.exceptions import LockTimeoutError, StorageError
from ledger_engine.models.account import Account
from ledger_engine.models.fraud_alert import FraudAlert
from ledger_engine.models.transaction import Direction, Transaction
from ledger_engine.models.transfer_record import TransferRecord

logger = logging.getLogger(__name__)


class AccountLockRegistry:
    """
    Exclusive in-process locks on account rows, taken in canonical order.

    A lock exists only while some task holds or awaits it; the last user
    to leave drops it, so the registry doesn't grow with every account
    ever touched.
    """

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: Counter[int] = Counter()

    def __len__(self) -> int:
        """Number of accounts currently locked or awaited."""
        return len(self._locks)

    def _lock_for(self, account_id: int) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = self._locks[account_id] = asyncio.Lock()
        self._users[account_id] += 1
        return lock

    def _leave(self, account_id: int) -> None:
        self._users[account_id] -= 1
        if self._users[account_id] <= 0:
            del self._users[account_id]
            del self._locks[account_id]

    def is_locked(self, account_id: int) -> bool:
        lock = self._locks.get(account_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, account_ids: Iterable[int], timeout: float):
        """
        Hold exclusive locks on every id in account_ids for the block.

        Ids are de-duplicated and sorted ascending before acquisition.
        The timeout covers acquiring all of them, not each one.

        Raises:
            LockTimeoutError: If the locks are not all held before the deadline.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        joined: list[int] = []
        acquired: list[asyncio.Lock] = []
        try:
            for account_id in sorted(set(account_ids)):
                lock = self._lock_for(account_id)
                joined.append(account_id)
                try:
                    # An uncontended acquire() never suspends, so it still
                    # succeeds once the deadline has passed
                    async with asyncio.timeout_at(deadline):
                        await lock.acquire()
                except TimeoutError:
                    raise LockTimeoutError(account_id, timeout) from None
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for account_id in joined:
                self._leave(account_id)


class LedgerStore:
    """Reads and writes against one session. Every write flushes immediately."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_account_by_number(self, account_number: str) -> Account | None:
        """Unlocked lookup by external account number."""
        result = await self.session.execute(
            select(Account).where(Account.account_number == account_number)
        )
        return result.scalar_one_or_none()

    async def lock_accounts_for_update(self, account_ids: Iterable[int]) -> dict[int, Account]:
        """
        Re-read account rows with an exclusive row lock, in ascending id order.

        Ids that don't exist are simply absent from the returned mapping.
        populate_existing makes sure the values come from this read even if
        the session already holds the objects.
        """
        accounts: dict[int, Account] = {}
        for account_id in sorted(set(account_ids)):
            result = await self.session.execute(
                select(Account)
                .where(Account.id == account_id)
                .with_for_update()  # No-op on SQLite, locks row on PostgreSQL
                .execution_options(populate_existing=True)
            )
            account = result.scalar_one_or_none()
            if account is not None:
                accounts[account_id] = account
        return accounts

    async def update_balance(self, account: Account, new_balance: Decimal) -> Account:
        account.balance = new_balance
        await self._flush("update balance of account %s" % account.id)
        return account

    async def append_transaction(self, txn: Transaction) -> Transaction:
        """Append a ledger row and return it with its assigned id."""
        self.session.add(txn)
        await self._flush("append transaction on account %s" % txn.account_id)
        return txn

    async def query_recent_debits(
        self,
        account_id: int,
        since: datetime,
        until: datetime,
    ) -> list[Transaction]:
        """DEBIT rows on an account with since <= created_at <= until, oldest first."""
        result = await self.session.execute(
            select(Transaction)
            .where(Transaction.account_id == account_id)
            .where(Transaction.direction == Direction.DEBIT)
            .where(Transaction.created_at >= since)
            .where(Transaction.created_at <= until)
            .order_by(Transaction.id)
        )
        return list(result.scalars().all())

    async def append_alerts(self, alerts: list[FraudAlert]) -> list[FraudAlert]:
        if alerts:
            self.session.add_all(alerts)
            await self._flush("append fraud alerts")
        return alerts

    async def append_transfer_record(self, record: TransferRecord) -> TransferRecord:
        self.session.add(record)
        await self._flush("append transfer record")
        return record

    async def _flush(self, action: str) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to {action}: {exc}") from exc


def is_lock_timeout(exc: DBAPIError) -> bool:
    """True when the driver gave up waiting on a lock held by another connection."""
    orig = exc.orig
    # PostgreSQL lock_not_available, raised once lock_timeout expires
    if getattr(orig, "sqlstate", None) == "55P03" or getattr(orig, "pgcode", None) == "55P03":
        return True
    # SQLite busy timeout
    return "database is locked" in str(orig)


class UnitOfWork:
    """
    One atomic unit of work.

    Usage:
        async with UnitOfWork(session_factory, lock_timeout=5.0) as uow:
            account = await uow.store.get_account_by_number("1234")
            ...
            await uow.commit()

    Anything not committed when the block exits is rolled back. Objects
    loaded in the block stay readable after it, committed or not: the
    session never expires them on commit, and they are detached before
    a rollback could expire them.

    A database lock wait that runs out (see engine_connect_args) leaves
    the block as LockTimeoutError, any other SQLAlchemy error as
    StorageError.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lock_timeout: float | None = None,
    ):
        self._session_factory = session_factory
        self.lock_timeout = lock_timeout
        self.session: AsyncSession | None = None
        self.store: LedgerStore | None = None
        self.committed = False

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self._session_factory(expire_on_commit=False)
        self.store = LedgerStore(self.session)
        return self

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to commit: {exc}") from exc
        self.committed = True

    async def rollback(self) -> None:
        self.session.expunge_all()
        await self.session.rollback()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            if not self.committed:
                await self.rollback()
        except SQLAlchemyError:
            # Never let a failed rollback replace the error that caused it
            logger.exception("Rollback failed")
        finally:
            await self.session.close()
        if isinstance(exc, DBAPIError) and is_lock_timeout(exc):
            raise LockTimeoutError(None, self.lock_timeout) from exc
        if isinstance(exc, SQLAlchemyError):
            raise StorageError(str(exc)) from exc
        return False
