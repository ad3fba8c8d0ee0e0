"""
Pydantic schemas for Account endpoints.

Monetary amounts are fixed-point decimals with two decimal places.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from ledger_engine.models.account import AccountType


class AccountCreateRequest(BaseModel):
    """Request body for POST /accounts."""
    holder_name: str = Field(min_length=1, max_length=120)
    account_type: AccountType = Field(
        default=AccountType.SAVINGS,
        description="Type of account to open",
    )
    opening_balance: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        decimal_places=2,
        description="Initial balance",
    )
    account_number: str | None = Field(
        default=None,
        min_length=1,
        max_length=20,
        description="Explicit account number; generated when omitted",
    )


class AccountResponse(BaseModel):
    """Public representation of an account."""
    id: int
    account_number: str
    holder_name: str
    account_type: AccountType
    balance: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
