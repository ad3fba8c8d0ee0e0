"""
Audit service — the TransferRecord trail.

Every transfer attempt leaves exactly one TransferRecord:
  - SUCCESS records are written by the orchestrator inside the transfer's
    own unit of work (they commit or roll back with it).
  - FAILED records are written here, in a fresh unit of work, after the
    transfer's unit of work has rolled back.

record_failure() is best-effort. If the audit write itself fails, the
failure is logged and swallowed so it never masks the error the caller
is about to receive.
"""

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_engine.exceptions import LedgerError
from ledger_engine.models.transaction import MAX_AMOUNT
from ledger_engine.models.transfer_record import TransferRecord, TransferStatus
from ledger_engine.services.ledger_store import UnitOfWork

logger = logging.getLogger(__name__)


def recordable_amount(amount) -> Decimal:
    """
    The requested amount as a storable Decimal.

    Anything that isn't a finite number fitting the amount column is
    recorded as 0; the message still carries what was asked for.
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")
    if not value.is_finite() or abs(value) > MAX_AMOUNT:
        return Decimal("0")
    return value


def build_record(
    status: TransferStatus,
    message: str,
    source_account_id: int,
    destination_account_id: int,
    amount,
    actor: str | None = None,
    source_account_number: str | None = None,
    destination_account_number: str | None = None,
) -> TransferRecord:
    return TransferRecord(
        source_account_id=source_account_id,
        destination_account_id=destination_account_id,
        source_account_number=source_account_number,
        destination_account_number=destination_account_number,
        amount=recordable_amount(amount),
        status=status,
        message=message[:500],
        actor=actor,
    )


async def record_failure(
    session_factory: async_sessionmaker[AsyncSession],
    error: LedgerError,
    source_account_id: int,
    destination_account_id: int,
    amount,
    actor: str | None = None,
    source_account_number: str | None = None,
    destination_account_number: str | None = None,
) -> TransferRecord | None:
    """
    Persist a FAILED record for a transfer that has already rolled back.

    Returns:
        The stored record, or None if the audit write failed.
    """
    record = build_record(
        TransferStatus.FAILED,
        error.detail,
        source_account_id,
        destination_account_id,
        amount,
        actor=actor,
        source_account_number=source_account_number,
        destination_account_number=destination_account_number,
    )
    try:
        async with UnitOfWork(session_factory) as uow:
            await uow.store.append_transfer_record(record)
            await uow.commit()
    except Exception:
        logger.exception(
            "Failed to write audit record for failed transfer",
            extra={
                "source_account_number": source_account_number,
                "destination_account_number": destination_account_number,
                "error_type": error.error_type,
            },
        )
        return None
    return record


async def list_transfer_records(
    db: AsyncSession,
    status_filter: TransferStatus | None = None,
    account_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[TransferRecord]:
    """
    List audit records, newest first.

    account_id matches either side of the transfer.
    """
    query = (
        select(TransferRecord)
        .order_by(TransferRecord.id.desc())
        .limit(limit)
        .offset(offset)
    )
    if status_filter:
        query = query.where(TransferRecord.status == status_filter)
    if account_id is not None:
        query = query.where(
            (TransferRecord.source_account_id == account_id)
            | (TransferRecord.destination_account_id == account_id)
        )

    result = await db.execute(query)
    return list(result.scalars().all())
