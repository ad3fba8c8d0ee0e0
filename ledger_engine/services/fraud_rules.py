"""
Fraud rules — deterministic threshold checks run on every new transaction.

evaluate() is a pure function: it looks at one transaction plus the
recent debit history of its account and returns AlertFinding values.
It never touches the database. The transfer orchestrator gathers the
history, calls evaluate() for each leg it appends, and persists the
findings as FraudAlert rows in the same unit of work.

Rules:
  HIGH_VALUE_TXN
    amount >= high_value_threshold. Applies to credits and debits alike,
    so a large transfer flags both of its legs.

  MULTI_MEDIUM_DEBITS
    The transaction is a DEBIT with amount >= medium_threshold, and the
    account has at least 3 such debits (this one included) in the
    trailing window [created_at - window, created_at], both ends
    inclusive. One finding per account per evaluate() call, however
    many debits are in the window.

Alerts never block a transfer.
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from ledger_engine.config import Settings
from ledger_engine.models.fraud_alert import AlertType, FraudAlert
from ledger_engine.models.transaction import Direction, Transaction


VELOCITY_DEBIT_COUNT = 3


@dataclass(frozen=True)
class FraudRules:
    high_value_threshold: Decimal = Decimal("250000")
    medium_threshold: Decimal = Decimal("50000")
    window: timedelta = timedelta(minutes=60)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FraudRules":
        return cls(
            high_value_threshold=settings.HIGH_VALUE_THRESHOLD,
            medium_threshold=settings.MEDIUM_THRESHOLD,
            window=timedelta(minutes=settings.WINDOW_MINUTES),
        )

    def is_medium_debit(self, txn: Transaction) -> bool:
        return txn.direction == Direction.DEBIT and txn.amount >= self.medium_threshold

    def needs_history(self, txn: Transaction) -> bool:
        """Only medium debits consult the account's recent history."""
        return self.is_medium_debit(txn)


@dataclass(frozen=True)
class AlertFinding:
    """An alert the rules want raised. Turned into a FraudAlert on persist."""

    alert_type: AlertType
    account_id: int
    transaction_id: int | None
    message: str

    def to_model(self) -> FraudAlert:
        return FraudAlert(
            account_id=self.account_id,
            transaction_id=self.transaction_id,
            alert_type=self.alert_type,
            message=self.message,
            is_resolved=False,
        )


def _is_same_row(a: Transaction, b: Transaction) -> bool:
    return a is b or (a.id is not None and a.id == b.id)


def count_window_debits(
    txn: Transaction,
    recent_history: list[Transaction],
    rules: FraudRules,
) -> int:
    """Medium debits on txn's account inside its trailing window, txn included."""
    window_start = txn.created_at - rules.window
    count = 1
    for other in recent_history:
        if _is_same_row(other, txn) or other.account_id != txn.account_id:
            continue
        if not rules.is_medium_debit(other):
            continue
        if window_start <= other.created_at <= txn.created_at:
            count += 1
    return count


def evaluate(
    txn: Transaction,
    recent_history: list[Transaction],
    rules: FraudRules = FraudRules(),
) -> list[AlertFinding]:
    """
    Run every rule against a newly appended transaction.

    Args:
        txn: The transaction that was just appended.
        recent_history: Debits on the same account around txn's timestamp.
                        May or may not already contain txn itself.
        rules: Thresholds and window size.

    Returns:
        Zero or more findings, in rule order. Calling evaluate() again with
        the same inputs returns an equal list.
    """
    findings: list[AlertFinding] = []

    if txn.amount >= rules.high_value_threshold:
        findings.append(
            AlertFinding(
                alert_type=AlertType.HIGH_VALUE_TXN,
                account_id=txn.account_id,
                transaction_id=txn.id,
                message=(
                    f"{txn.direction.value} of {txn.amount} meets the high-value "
                    f"threshold of {rules.high_value_threshold}"
                ),
            )
        )

    if rules.is_medium_debit(txn):
        count = count_window_debits(txn, recent_history, rules)
        if count >= VELOCITY_DEBIT_COUNT:
            window_minutes = int(rules.window.total_seconds() // 60)
            findings.append(
                AlertFinding(
                    alert_type=AlertType.MULTI_MEDIUM_DEBITS,
                    account_id=txn.account_id,
                    transaction_id=txn.id,
                    message=(
                        f"{count} debits of at least {rules.medium_threshold} "
                        f"within {window_minutes} minutes"
                    ),
                )
            )

    return findings
