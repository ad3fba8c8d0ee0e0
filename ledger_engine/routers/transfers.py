"""
Transfers router — atomic money transfers between accounts.

Endpoints:
  POST /transfers — Transfer money from one account to another
  GET  /transfers — List transfer audit records (successes and failures)

A transfer is an atomic operation that creates two linked transactions
(a DEBIT on the source, a CREDIT on the destination), runs the fraud rules
on both, and writes one audit record. Rejected transfers leave their own
FAILED audit record and return the matching error response.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_engine.database import get_db
from ledger_engine.dependencies import get_orchestrator
from ledger_engine.models.transfer_record import TransferStatus
from ledger_engine.schemas.transfer import (
    FraudAlertResponse,
    TransactionResponse,
    TransferRecordResponse,
    TransferRequest,
    TransferResponse,
)
from ledger_engine.services import audit_service
from ledger_engine.services.transfer_service import TransferOrchestrator

router = APIRouter()


@router.post(
    "",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Transfer money between accounts",
)
async def create_transfer(
    request: TransferRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """
    Transfer money from one account to another.

    Either both balances change and both ledger legs are written, or
    nothing changes. Fraud alerts raised by the transfer are returned but
    never block it.
    """
    result = await orchestrator.transfer(
        from_account_number=request.from_account_number,
        to_account_number=request.to_account_number,
        amount=request.amount,
        actor=request.actor,
        description=request.description,
    )

    return TransferResponse(
        record=TransferRecordResponse.model_validate(result.record),
        debit_transaction=TransactionResponse.model_validate(result.debit_transaction),
        credit_transaction=TransactionResponse.model_validate(result.credit_transaction),
        alerts=[FraudAlertResponse.model_validate(alert) for alert in result.alerts],
    )


@router.get(
    "",
    response_model=list[TransferRecordResponse],
    summary="List transfer audit records",
)
async def list_transfers(
    status_filter: TransferStatus | None = Query(None, alias="status"),
    account_id: int | None = Query(None, description="Match either side of the transfer"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await audit_service.list_transfer_records(
        db,
        status_filter=status_filter,
        account_id=account_id,
        limit=limit,
        offset=offset,
    )
