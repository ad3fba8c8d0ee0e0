"""
Transaction model — the append-only ledger.

Every movement of money creates Transaction records. A transfer creates
TWO: a DEBIT on the source and a CREDIT on the destination. Each leg names
the other account as its counterparty, and both share a transfer_pair_id.

Key fields:
  - id: autoincrement, so ids grow monotonically in append order
  - direction: CREDIT (money in) or DEBIT (money out)
  - amount: always positive, the direction says which way it went
  - counterparty_account_id: the other side of a transfer
  - actor: who initiated the operation

Rows are never updated. Corrections are new offsetting transactions.

Indexes on (account_id, created_at) and direction support the recent-debit
window query used by the velocity fraud rule.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, ForeignKey, CheckConstraint, Enum, Index
from sqlalchemy.orm import Mapped, mapped_column

from ledger_engine.database import Base, UTCDateTime, utcnow


# Largest value a Numeric(18, 2) amount or balance column can hold
MAX_AMOUNT = Decimal("9999999999999999.99")


class Direction(str, enum.Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        # Amount must always be positive — direction is indicated separately
        CheckConstraint("amount > 0", name="ck_transactions_positive_amount"),
        Index("ix_transactions_account_created", "account_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
    )

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
    )

    direction: Mapped[Direction] = mapped_column(
        Enum(Direction, native_enum=False, length=10),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
    )

    counterparty_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=True,
    )

    # Links the two legs of a transfer
    transfer_pair_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
        index=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    actor: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
    )
