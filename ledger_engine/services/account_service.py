"""
Account service — account lifecycle around the ledger.

This module handles:
  - Account opening (with unique account number generation)
  - Account lookup by external account number
  - Soft deactivation (accounts are never deleted)

None of these touch an existing balance. Balances change only through
the transfer orchestrator; the opening balance is the one value set here,
at creation time.
"""

import random
import string
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_engine.exceptions import AccountNotFoundError, DuplicateAccountNumberError, InvalidAmountError
from ledger_engine.models.account import Account, AccountType


def _generate_account_number() -> str:
    """Random 10-digit account number."""
    return "".join(random.choices(string.digits, k=10))


async def _number_taken(db: AsyncSession, account_number: str) -> bool:
    existing = await db.execute(
        select(Account.id).where(Account.account_number == account_number)
    )
    return existing.scalar_one_or_none() is not None


async def open_account(
    db: AsyncSession,
    holder_name: str,
    account_type: AccountType = AccountType.SAVINGS,
    opening_balance: Decimal = Decimal("0.00"),
    account_number: str | None = None,
) -> Account:
    """
    Open a new account.

    Args:
        db: Database session.
        holder_name: Name of the account holder.
        account_type: SAVINGS or CURRENT.
        opening_balance: Initial balance, zero or more.
        account_number: Explicit number to use; generated when omitted.

    Returns:
        The newly created Account instance.

    Raises:
        InvalidAmountError: If the opening balance is negative.
        DuplicateAccountNumberError: If an explicit number is already taken.
    """
    if opening_balance < 0:
        raise InvalidAmountError(opening_balance)

    if account_number is not None:
        if await _number_taken(db, account_number):
            raise DuplicateAccountNumberError(account_number)
    else:
        # Retry on collision, extremely unlikely with 10 random digits
        for _ in range(10):
            account_number = _generate_account_number()
            if not await _number_taken(db, account_number):
                break
        else:
            raise RuntimeError("Failed to generate a unique account number")

    account = Account(
        account_number=account_number,
        holder_name=holder_name,
        account_type=account_type,
        balance=opening_balance.quantize(Decimal("0.01")),
    )
    db.add(account)
    await db.flush()
    return account


async def get_account_by_number(db: AsyncSession, account_number: str) -> Account:
    """
    Raises:
        AccountNotFoundError: If no account has this number.
    """
    result = await db.execute(
        select(Account).where(Account.account_number == account_number)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise AccountNotFoundError(account_number)
    return account


async def deactivate_account(db: AsyncSession, account_number: str) -> Account:
    """
    Soft-deactivate an account. Its ledger rows stay untouched.

    Inactive accounts can't take part in transfers in either direction.
    Deactivating an already inactive account is a no-op.
    """
    account = await get_account_by_number(db, account_number)
    account.is_active = False
    await db.flush()
    return account

