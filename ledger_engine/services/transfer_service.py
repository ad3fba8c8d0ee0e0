"""
Transfer service — the atomic transfer orchestrator.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. A transfer runs as:

  resolve -> validate -> lock -> re-read -> debit -> credit
          -> append both legs -> evaluate fraud rules -> audit -> commit

Atomicity:
  Balance updates, both ledger legs, any fraud alerts and the SUCCESS
  audit record are written in ONE unit of work. Nothing is visible to
  other readers until it commits, and any failure rolls all of it back.

Locking:
  Both accounts are locked in ascending id order (see AccountLockRegistry)
  before the unit of work opens, and the balance is re-read under that
  lock. The balance read while resolving account numbers is never used
  for a decision. The unit of work is only opened once the locks are
  held, so a database-level write lock is never waited on while holding
  an account lock someone else needs.

Failures:
  Validation errors are raised before anything is written. Storage
  errors during the mutation phase roll the whole unit back. Either way
  a FAILED TransferRecord is then written in its own unit of work and
  the original error is re-raised to the caller.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_engine.config import Settings, settings as default_settings
from ledger_engine.database import utcnow
from ledger_engine.exceptions import (
    AccountNotFoundError,
    InsufficientFundsError,
    InvalidAmountError,
    LedgerError,
    SameAccountError,
)
from ledger_engine.models.account import Account
from ledger_engine.models.fraud_alert import FraudAlert
from ledger_engine.models.transaction import MAX_AMOUNT, Direction, Transaction
from ledger_engine.models.transfer_record import (
    TransferRecord,
    TransferStatus,
    UNRESOLVED_ACCOUNT_ID,
)
from ledger_engine.services import audit_service, fraud_rules
from ledger_engine.services.fraud_rules import FraudRules
from ledger_engine.services.ledger_store import AccountLockRegistry, LedgerStore, UnitOfWork

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class TransferResult:
    """Everything a successful transfer produced."""
    record: TransferRecord
    debit_transaction: Transaction
    credit_transaction: Transaction
    alerts: list[FraudAlert] = field(default_factory=list)


def parse_amount(amount) -> Decimal:
    """
    Coerce amount to a Decimal in whole cents.

    Raises:
        InvalidAmountError: If the amount isn't a finite number greater
                            than zero with at most two decimal places,
                            or is too large for an amount column.
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        if not value.is_finite() or value <= 0 or value > MAX_AMOUNT:
            raise InvalidAmountError(amount)
        cents = value.quantize(CENT)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(amount) from None
    if cents != value:
        raise InvalidAmountError(amount)
    return cents


class TransferOrchestrator:
    """
    Runs transfers against the ledger.

    One instance should be shared by every caller in the process: its
    lock registry is what serializes transfers touching the same account.

    Args:
        session_factory: Source of sessions for units of work.
        settings: Fraud thresholds and lock timeout.
        locks: Lock registry (a fresh one by default).
        clock: Returns the aware UTC timestamp stamped on both legs.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings = default_settings,
        locks: AccountLockRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.rules = FraudRules.from_settings(settings)
        self.lock_timeout = settings.LOCK_TIMEOUT_SECONDS
        self.locks = locks if locks is not None else AccountLockRegistry()
        self.clock = clock

    async def transfer(
        self,
        from_account_number: str,
        to_account_number: str,
        amount,
        actor: str,
        description: str | None = None,
    ) -> TransferResult:
        """
        Move amount from one account to another.

        Returns:
            TransferResult with the SUCCESS record, both legs and any alerts.

        Raises:
            AccountNotFoundError: Either account is unknown or inactive.
            SameAccountError: Both numbers name the same account.
            InvalidAmountError: Amount is not a positive whole-cent value.
            InsufficientFundsError: Source balance (read under lock) is too low.
            LockTimeoutError: Account or database locks weren't acquired in time.
            StorageError: The database failed; nothing was applied.
        """
        source_id = destination_id = UNRESOLVED_ACCOUNT_ID
        try:
            source_active = destination_active = False
            async with UnitOfWork(self.session_factory, self.lock_timeout) as uow:
                source = await uow.store.get_account_by_number(from_account_number)
                destination = await uow.store.get_account_by_number(to_account_number)
                if source is not None:
                    source_id, source_active = source.id, source.is_active
                if destination is not None:
                    destination_id, destination_active = destination.id, destination.is_active

            if not source_active:
                raise AccountNotFoundError(from_account_number)
            if not destination_active:
                raise AccountNotFoundError(to_account_number)
            if source_id == destination_id:
                raise SameAccountError(from_account_number)
            value = parse_amount(amount)

            async with self.locks.hold([source_id, destination_id], self.lock_timeout):
                async with UnitOfWork(self.session_factory, self.lock_timeout) as uow:
                    result = await self._apply(
                        uow.store, source_id, destination_id, value, actor, description
                    )
                    await uow.commit()
        except LedgerError as exc:
            logger.warning(
                "Transfer rejected: %s",
                exc.detail,
                extra={
                    "error_type": exc.error_type,
                    "from_account_number": from_account_number,
                    "to_account_number": to_account_number,
                    "actor": actor,
                },
            )
            await audit_service.record_failure(
                self.session_factory,
                exc,
                source_id,
                destination_id,
                amount,
                actor=actor,
                source_account_number=from_account_number,
                destination_account_number=to_account_number,
            )
            raise

        logger.info(
            "Transfer completed",
            extra={
                "transfer_record_id": result.record.id,
                "source_account_id": source_id,
                "destination_account_id": destination_id,
                "amount": str(value),
                "actor": actor,
                "alerts": len(result.alerts),
            },
        )
        return result

    async def _apply(
        self,
        store: LedgerStore,
        source_id: int,
        destination_id: int,
        amount: Decimal,
        actor: str,
        description: str | None,
    ) -> TransferResult:
        """The mutation phase. Runs under both account locks, inside one unit of work."""
        accounts = await store.lock_accounts_for_update([source_id, destination_id])
        source = self._require_active(accounts, source_id)
        destination = self._require_active(accounts, destination_id)

        if source.balance < amount:
            raise InsufficientFundsError(
                account_id=source.id,
                requested=amount,
                available=source.balance,
            )

        await store.update_balance(source, source.balance - amount)
        await store.update_balance(destination, destination.balance + amount)

        now = self.clock()
        transfer_pair_id = uuid.uuid4()
        debit_txn = await store.append_transaction(
            Transaction(
                account_id=source.id,
                direction=Direction.DEBIT,
                amount=amount,
                counterparty_account_id=destination.id,
                transfer_pair_id=transfer_pair_id,
                description=description,
                actor=actor,
                created_at=now,
            )
        )
        credit_txn = await store.append_transaction(
            Transaction(
                account_id=destination.id,
                direction=Direction.CREDIT,
                amount=amount,
                counterparty_account_id=source.id,
                transfer_pair_id=transfer_pair_id,
                description=description,
                actor=actor,
                created_at=now,
            )
        )

        alerts: list[FraudAlert] = []
        for txn in (debit_txn, credit_txn):
            alerts.extend(await self._screen(store, txn))
        await store.append_alerts(alerts)

        record = await store.append_transfer_record(
            audit_service.build_record(
                TransferStatus.SUCCESS,
                "Transfer completed",
                source.id,
                destination.id,
                amount,
                actor=actor,
                source_account_number=source.account_number,
                destination_account_number=destination.account_number,
            )
        )
        return TransferResult(
            record=record,
            debit_transaction=debit_txn,
            credit_transaction=credit_txn,
            alerts=alerts,
        )

    async def _screen(self, store: LedgerStore, txn: Transaction) -> list[FraudAlert]:
        """Run the fraud rules on one freshly appended leg."""
        history: list[Transaction] = []
        if self.rules.needs_history(txn):
            history = await store.query_recent_debits(
                txn.account_id,
                txn.created_at - self.rules.window,
                txn.created_at,
            )
        findings = fraud_rules.evaluate(txn, history, self.rules)
        for finding in findings:
            logger.warning(
                "Fraud alert raised: %s",
                finding.message,
                extra={
                    "alert_type": finding.alert_type.value,
                    "account_id": finding.account_id,
                    "transaction_id": finding.transaction_id,
                },
            )
        return [finding.to_model() for finding in findings]

    @staticmethod
    def _require_active(accounts: dict[int, Account], account_id: int) -> Account:
        # Re-checked under lock: the account may have been deactivated since resolution
        account = accounts.get(account_id)
        if account is None or not account.is_active:
            raise AccountNotFoundError(account_id)
        return account
