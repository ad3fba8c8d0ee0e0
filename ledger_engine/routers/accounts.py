"""
Accounts router — account lifecycle endpoints.

Endpoints:
  POST /accounts                               — Open an account
  GET  /accounts/{account_number}              — Account details and balance
  POST /accounts/{account_number}/deactivate   — Soft-deactivate an account

There is no endpoint that changes a balance directly. Balances move only
through POST /transfers.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_engine.database import get_db
from ledger_engine.schemas.account import AccountCreateRequest, AccountResponse
from ledger_engine.services import account_service

router = APIRouter()


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open an account",
)
async def open_account(
    request: AccountCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Open a SAVINGS or CURRENT account with an optional opening balance.

    A 10-digit account number is generated unless one is supplied.
    """
    return await account_service.open_account(
        db=db,
        holder_name=request.holder_name,
        account_type=request.account_type,
        opening_balance=request.opening_balance,
        account_number=request.account_number,
    )


@router.get(
    "/{account_number}",
    response_model=AccountResponse,
    summary="Get account details",
)
async def get_account(
    account_number: str,
    db: AsyncSession = Depends(get_db),
):
    return await account_service.get_account_by_number(db, account_number)


@router.post(
    "/{account_number}/deactivate",
    response_model=AccountResponse,
    summary="Deactivate an account",
)
async def deactivate_account(
    account_number: str,
    db: AsyncSession = Depends(get_db),
):
    """
    Mark the account inactive. Its history is kept and it can no longer
    send or receive transfers.
    """
    return await account_service.deactivate_account(db, account_number)
