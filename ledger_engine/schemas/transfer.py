"""
Pydantic schemas for Transfer endpoints.

The request schema deliberately does not reject zero amounts or same-account
transfers: those checks belong to the orchestrator, which records a FAILED
audit entry for them like any other rejected transfer.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from ledger_engine.models.fraud_alert import AlertType
from ledger_engine.models.transaction import Direction
from ledger_engine.models.transfer_record import TransferStatus


class TransferRequest(BaseModel):
    """Request body for POST /transfers."""
    from_account_number: str = Field(min_length=1, max_length=40)
    to_account_number: str = Field(min_length=1, max_length=40)
    amount: Decimal = Field(description="Amount to move, at most two decimal places")
    actor: str = Field(min_length=1, max_length=120, description="Who initiated the transfer")
    description: str | None = Field(default=None, max_length=255)


class TransactionResponse(BaseModel):
    """Public representation of one ledger leg."""
    id: int
    account_id: int
    direction: Direction
    amount: Decimal
    counterparty_account_id: int | None
    transfer_pair_id: uuid.UUID | None
    description: str | None
    actor: str
    created_at: datetime

    model_config = {"from_attributes": True}


class FraudAlertResponse(BaseModel):
    """Public representation of a fraud alert."""
    id: int
    account_id: int
    transaction_id: int | None
    alert_type: AlertType
    message: str
    is_resolved: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class TransferRecordResponse(BaseModel):
    """Public representation of an audit record."""
    id: int
    source_account_id: int
    destination_account_id: int
    source_account_number: str | None
    destination_account_number: str | None
    amount: Decimal
    status: TransferStatus
    message: str
    actor: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TransferResponse(BaseModel):
    """Response body for a successful transfer."""
    record: TransferRecordResponse
    debit_transaction: TransactionResponse
    credit_transaction: TransactionResponse
    alerts: list[FraudAlertResponse]
