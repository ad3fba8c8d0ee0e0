"""
Fraud alerts router — read-only view of alerts raised by transfers.

Endpoints:
  GET /fraud-alerts — List alerts, filterable by account, type and resolution
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_engine.database import get_db
from ledger_engine.models.fraud_alert import AlertType
from ledger_engine.schemas.transfer import FraudAlertResponse
from ledger_engine.services import alert_service

router = APIRouter()


@router.get(
    "",
    response_model=list[FraudAlertResponse],
    summary="List fraud alerts",
)
async def list_fraud_alerts(
    account_id: int | None = Query(None),
    alert_type: AlertType | None = Query(None),
    resolved: bool | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await alert_service.list_fraud_alerts(
        db,
        account_id=account_id,
        alert_type=alert_type,
        resolved=resolved,
        limit=limit,
        offset=offset,
    )
