"""
Alert service — read access to persisted fraud alerts.

Alerts are written only by the transfer orchestrator (from the findings of
the fraud rules). This module never creates or modifies them.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_engine.models.fraud_alert import AlertType, FraudAlert


async def list_fraud_alerts(
    db: AsyncSession,
    account_id: int | None = None,
    alert_type: AlertType | None = None,
    resolved: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[FraudAlert]:
    """List fraud alerts, newest first, with optional filters."""
    query = (
        select(FraudAlert)
        .order_by(FraudAlert.id.desc())
        .limit(limit)
        .offset(offset)
    )
    if account_id is not None:
        query = query.where(FraudAlert.account_id == account_id)
    if alert_type is not None:
        query = query.where(FraudAlert.alert_type == alert_type)
    if resolved is not None:
        query = query.where(FraudAlert.is_resolved == resolved)

    result = await db.execute(query)
    return list(result.scalars().all())
