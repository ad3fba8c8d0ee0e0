"""
Account model — a ledger account holding a balance.

Each account has:
  - An integer id (the canonical lock key, immutable)
  - A unique external account number (what callers use, immutable)
  - A holder name and a type: SAVINGS or CURRENT
  - A fixed-point balance (Numeric(18, 2), exposed as Decimal)
  - An active flag (accounts are deactivated, never deleted)

Balance management:
  The balance is mutated only by the transfer orchestrator while it holds
  the account's lock. A CHECK constraint at the database level enforces
  that the balance can never go negative; the orchestrator checks first,
  the constraint is the final safety net.
"""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Boolean, Numeric, CheckConstraint, Enum
from sqlalchemy.orm import Mapped, mapped_column

from ledger_engine.database import Base, UTCDateTime, utcnow


class AccountType(str, enum.Enum):
    """
    Kind of account.

    Inherits from str so the enum value serializes naturally to JSON.
    """
    SAVINGS = "SAVINGS"
    CURRENT = "CURRENT"


class Account(Base):
    __tablename__ = "accounts"

    # Database-level constraint: balance can never be negative
    __table_args__ = (
        CheckConstraint(
            "balance >= 0",
            name="ck_accounts_non_negative_balance",
        ),
    )

    # Integer ids give a natural ascending order for lock acquisition
    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
    )

    account_number: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
    )

    holder_name: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
    )

    account_type: Mapped[AccountType] = mapped_column(
        Enum(AccountType, native_enum=False, length=10),
        nullable=False,
        default=AccountType.SAVINGS,
    )

    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
