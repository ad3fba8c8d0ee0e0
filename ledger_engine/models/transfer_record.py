"""
TransferRecord model — the audit trail of transfer attempts.

Exactly one record is written per call to the transfer orchestrator,
whether the transfer succeeded or failed. A SUCCESS record is written in
the same unit of work as the balance changes. A FAILED record is written
afterwards, in its own unit of work, so it survives the rollback of the
transfer it describes.

The account id columns are plain integers rather than foreign keys: when
an account number cannot be resolved, the record stores the sentinel
UNRESOLVED_ACCOUNT_ID (0) alongside the number the caller supplied.
"""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, Enum, Integer
from sqlalchemy.orm import Mapped, mapped_column

from ledger_engine.database import Base, UTCDateTime, utcnow


UNRESOLVED_ACCOUNT_ID = 0


class TransferStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class TransferRecord(Base):
    __tablename__ = "transfer_records"

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
    )

    source_account_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    destination_account_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )

    # Account numbers exactly as requested by the caller
    source_account_number: Mapped[str | None] = mapped_column(
        String(40),
        nullable=True,
    )
    destination_account_number: Mapped[str | None] = mapped_column(
        String(40),
        nullable=True,
    )

    # Stored as requested, so invalid amounts (zero, negative) are kept too
    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
    )

    status: Mapped[TransferStatus] = mapped_column(
        Enum(TransferStatus, native_enum=False, length=10),
        nullable=False,
        index=True,
    )

    message: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    actor: Mapped[str | None] = mapped_column(
        String(120),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
        index=True,
    )
