"""
FraudAlert model — a flag raised by the fraud rules.

Alerts are produced by the rule evaluator for each newly appended
transaction and persisted by the transfer orchestrator in the same unit
of work. They do not block the transfer. Resolution (flipping is_resolved)
belongs to a separate review workflow.
"""

import enum
from datetime import datetime

from sqlalchemy import String, Boolean, ForeignKey, Enum
from sqlalchemy.orm import Mapped, mapped_column

from ledger_engine.database import Base, UTCDateTime, utcnow


class AlertType(str, enum.Enum):
    HIGH_VALUE_TXN = "HIGH_VALUE_TXN"
    MULTI_MEDIUM_DEBITS = "MULTI_MEDIUM_DEBITS"


class FraudAlert(Base):
    __tablename__ = "fraud_alerts"

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
    )

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    # The transaction whose insertion triggered the alert
    transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("transactions.id"),
        nullable=True,
        index=True,
    )

    alert_type: Mapped[AlertType] = mapped_column(
        Enum(AlertType, native_enum=False, length=30),
        nullable=False,
    )

    message: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    is_resolved: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
        index=True,
    )
