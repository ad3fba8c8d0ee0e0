"""
Tests for the ledger store, unit of work and account lock registry.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_engine.exceptions import LockTimeoutError, StorageError
from ledger_engine.models.account import Account
from ledger_engine.models.transaction import Direction, Transaction
from ledger_engine.services.ledger_store import AccountLockRegistry, UnitOfWork


T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _debit(account_id: int, amount: str, at: datetime, direction=Direction.DEBIT) -> Transaction:
    return Transaction(
        account_id=account_id,
        direction=direction,
        amount=Decimal(amount),
        actor="test",
        created_at=at,
    )


class TestAccountLockRegistry:

    async def test_locks_taken_in_ascending_order(self):
        registry = AccountLockRegistry()
        order = []
        original = AccountLockRegistry._lock_for

        def recording_lock_for(self, account_id):
            order.append(account_id)
            return original(self, account_id)

        with patch.object(AccountLockRegistry, "_lock_for", recording_lock_for):
            async with registry.hold([9, 2, 5, 2], timeout=1):
                assert all(registry.is_locked(i) for i in (2, 5, 9))

        assert order == [2, 5, 9]
        assert not any(registry.is_locked(i) for i in (2, 5, 9))

    async def test_opposite_orders_do_not_deadlock(self):
        registry = AccountLockRegistry()
        entered = []

        async def worker(ids, name):
            async with registry.hold(ids, timeout=1):
                entered.append(name)
                await asyncio.sleep(0.01)

        await asyncio.gather(worker([1, 2], "forward"), worker([2, 1], "backward"))
        assert sorted(entered) == ["backward", "forward"]

    async def test_timeout_raises_and_releases(self):
        registry = AccountLockRegistry()

        async with registry.hold([3], timeout=1):
            with pytest.raises(LockTimeoutError) as exc_info:
                async with registry.hold([1, 3], timeout=0.02):
                    pass
            assert exc_info.value.account_id == 3
            assert not registry.is_locked(1)
            assert len(registry) == 1

        assert len(registry) == 0

    async def test_lock_released_when_block_raises(self):
        registry = AccountLockRegistry()

        with pytest.raises(RuntimeError):
            async with registry.hold([1], timeout=1):
                raise RuntimeError("boom")

        assert not registry.is_locked(1)
        assert len(registry) == 0

    async def test_idle_locks_are_dropped(self):
        registry = AccountLockRegistry()

        for account_id in range(1, 50):
            async with registry.hold([account_id, account_id + 1], timeout=1):
                assert len(registry) == 2

        assert len(registry) == 0

    async def test_lock_kept_while_another_task_waits(self):
        registry = AccountLockRegistry()
        entered = asyncio.Event()

        async def waiter():
            async with registry.hold([1], timeout=1):
                entered.set()

        async with registry.hold([1], timeout=1):
            task = asyncio.create_task(waiter())
            await asyncio.sleep(0.01)
            assert not entered.is_set()
            assert len(registry) == 1

        await task
        assert entered.is_set()
        assert len(registry) == 0


class TestUnitOfWork:

    async def test_uncommitted_work_is_rolled_back(self, session_factory, open_account, fetch_balance):
        account = await open_account("A", "100")

        async with UnitOfWork(session_factory) as uow:
            locked = await uow.store.lock_accounts_for_update([account.id])
            await uow.store.update_balance(locked[account.id], Decimal("5"))

        assert await fetch_balance("A") == Decimal("100")

    async def test_commit_makes_work_durable(self, session_factory, open_account, fetch_balance):
        account = await open_account("A", "100")

        async with UnitOfWork(session_factory) as uow:
            locked = await uow.store.lock_accounts_for_update([account.id])
            await uow.store.update_balance(locked[account.id], Decimal("5"))
            await uow.commit()

        assert await fetch_balance("A") == Decimal("5")

    async def test_database_errors_surface_as_storage_error(self, session_factory):
        async def broken_execute(self, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        with patch.object(AsyncSession, "execute", broken_execute):
            with pytest.raises(StorageError):
                async with UnitOfWork(session_factory) as uow:
                    await uow.store.get_account_by_number("A")

    async def test_negative_balance_rejected_by_database(self, session_factory, open_account, fetch_balance):
        account = await open_account("A", "100")

        with pytest.raises(StorageError):
            async with UnitOfWork(session_factory) as uow:
                locked = await uow.store.lock_accounts_for_update([account.id])
                await uow.store.update_balance(locked[account.id], Decimal("-1"))

        assert await fetch_balance("A") == Decimal("100")

    async def test_objects_readable_after_rollback(self, session_factory, open_account):
        await open_account("A", "100")

        async with UnitOfWork(session_factory) as uow:
            account = await uow.store.get_account_by_number("A")

        assert account.account_number == "A"
        assert account.balance == Decimal("100")
        assert account.is_active is True

    async def test_objects_readable_after_commit_with_expiring_factory(
        self, db_engine, open_account
    ):
        expiring_factory = async_sessionmaker(db_engine, class_=AsyncSession)
        account = await open_account("A", "100")

        async with UnitOfWork(expiring_factory) as uow:
            locked = await uow.store.lock_accounts_for_update([account.id])
            await uow.store.update_balance(locked[account.id], Decimal("60"))
            await uow.commit()

        assert locked[account.id].balance == Decimal("60")
        assert locked[account.id].account_number == "A"

    async def test_driver_lock_wait_surfaces_as_lock_timeout(self, session_factory):
        async def busy_execute(self, *args, **kwargs):
            raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))

        with patch.object(AsyncSession, "execute", busy_execute):
            with pytest.raises(LockTimeoutError) as exc_info:
                async with UnitOfWork(session_factory, lock_timeout=0.25) as uow:
                    await uow.store.lock_accounts_for_update([1, 2])

        assert exc_info.value.account_id is None
        assert exc_info.value.timeout == 0.25

    async def test_busy_database_raises_lock_timeout(
        self, session_factory, short_wait_session_factory, open_account
    ):
        await open_account("A", "100")

        async with session_factory() as holder:
            # BEGIN IMMEDIATE: holder keeps the write lock until rollback
            await holder.execute(select(Account.id))
            with pytest.raises(LockTimeoutError):
                async with UnitOfWork(short_wait_session_factory, lock_timeout=0.05) as uow:
                    await uow.store.get_account_by_number("A")
            await holder.rollback()

        async with UnitOfWork(short_wait_session_factory, lock_timeout=0.05) as uow:
            assert await uow.store.get_account_by_number("A") is not None


class TestLedgerStoreQueries:

    async def test_lock_skips_missing_accounts(self, session_factory, open_account):
        account = await open_account("A", "100")

        async with UnitOfWork(session_factory) as uow:
            locked = await uow.store.lock_accounts_for_update([999, account.id])

        assert list(locked) == [account.id]

    async def test_recent_debits_window_is_inclusive(self, session_factory, open_account):
        a = await open_account("A", "0")
        b = await open_account("B", "0")

        async with UnitOfWork(session_factory) as uow:
            for txn in (
                _debit(a.id, "10", T0 - timedelta(minutes=61)),
                _debit(a.id, "20", T0 - timedelta(minutes=60)),
                _debit(a.id, "30", T0 - timedelta(minutes=1)),
                _debit(a.id, "40", T0),
                _debit(a.id, "50", T0 + timedelta(seconds=1)),
                _debit(a.id, "60", T0, direction=Direction.CREDIT),
                _debit(b.id, "70", T0),
            ):
                await uow.store.append_transaction(txn)
            await uow.commit()

        async with UnitOfWork(session_factory) as uow:
            debits = await uow.store.query_recent_debits(a.id, T0 - timedelta(minutes=60), T0)

        assert [d.amount for d in debits] == [Decimal("20"), Decimal("30"), Decimal("40")]
        assert all(d.created_at.tzinfo is not None for d in debits)

    async def test_append_assigns_increasing_ids(self, session_factory, open_account):
        a = await open_account("A", "0")

        async with UnitOfWork(session_factory) as uow:
            first = await uow.store.append_transaction(_debit(a.id, "1", T0))
            second = await uow.store.append_transaction(_debit(a.id, "2", T0))
            await uow.commit()

        assert first.id is not None
        assert second.id > first.id
