"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all()
  2. Other modules can import from ledger_engine.models directly
"""

from ledger_engine.models.account import Account, AccountType  # noqa: F401
from ledger_engine.models.transaction import Transaction, Direction  # noqa: F401
from ledger_engine.models.fraud_alert import FraudAlert, AlertType  # noqa: F401
from ledger_engine.models.transfer_record import (  # noqa: F401
    TransferRecord,
    TransferStatus,
    UNRESOLVED_ACCOUNT_ID,
)
