"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors (like InsufficientFundsError)
without importing HTTP concepts. The handler layer translates them into
HTTP responses with a consistent body: {"detail": ..., "error_type": ...}.

Exception hierarchy:
    LedgerError (base)
    ├── AccountNotFoundError        — unknown or inactive account
    ├── SameAccountError            — source and destination are the same
    ├── InvalidAmountError          — amount not a positive two-decimal value
    ├── InsufficientFundsError      — source balance below the amount
    ├── LockTimeoutError            — account locks not acquired in time
    ├── StorageError                — any underlying persistence failure
    └── DuplicateAccountNumberError — opening an account with a taken number

Every one of these is recoverable from the caller's point of view.
"""

from decimal import Decimal

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class LedgerError(Exception):
    """Base exception for all ledger domain errors."""

    error_type = "ledger_error"
    status_code = 400

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class AccountNotFoundError(LedgerError):
    """Raised when an account does not exist or has been deactivated."""

    error_type = "account_not_found"
    status_code = 404

    def __init__(self, account_ref: str | int):
        self.account_ref = account_ref
        super().__init__(f"Account {account_ref} not found or inactive")


class SameAccountError(LedgerError):
    """Raised when a transfer names the same account on both sides."""

    error_type = "same_account"
    status_code = 422

    def __init__(self, account_ref: str | int):
        self.account_ref = account_ref
        super().__init__(f"Cannot transfer from account {account_ref} to itself")


class InvalidAmountError(LedgerError):
    """Raised when a transfer amount is not a positive amount in whole cents."""

    error_type = "invalid_amount"
    status_code = 422

    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Invalid transfer amount: {amount}")


class InsufficientFundsError(LedgerError):
    """
    Raised when a transfer would take the source balance below zero.

    Attributes:
        account_id: The account that lacks sufficient funds.
        requested: The amount the caller tried to move.
        available: The balance read under lock.
    """

    error_type = "insufficient_funds"
    status_code = 422

    def __init__(self, account_id: int, requested: Decimal, available: Decimal):
        self.account_id = account_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient funds: requested {requested}, available {available}"
        )


class LockTimeoutError(LedgerError):
    """
    Raised when locks cannot be acquired within the configured timeout.

    account_id is None when the wait was on a database lock (SQLite's
    write lock, a PostgreSQL row lock) rather than on a known account.
    """

    error_type = "lock_timeout"
    status_code = 409

    def __init__(self, account_id: int | None, timeout: float | None):
        self.account_id = account_id
        self.timeout = timeout
        target = (
            f"lock on account {account_id}" if account_id is not None else "a database lock"
        )
        waited = f" after {timeout}s" if timeout is not None else ""
        super().__init__(f"Timed out{waited} waiting for {target}")


class StorageError(LedgerError):
    """Wraps any failure raised by the persistence layer."""

    error_type = "storage_error"
    status_code = 503

    def __init__(self, detail: str = "Storage failure"):
        super().__init__(detail)


class DuplicateAccountNumberError(LedgerError):
    """Raised when opening an account with a number that is already taken."""

    error_type = "duplicate_account_number"
    status_code = 409

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"Account number {account_number} is already in use")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Each domain exception carries its own status code and error_type, so a
    single handler covers the whole hierarchy. Insufficient funds adds the
    requested/available amounts to the body.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(InsufficientFundsError)
    async def insufficient_funds_handler(
        request: Request, exc: InsufficientFundsError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "error_type": exc.error_type,
                "requested": str(exc.requested),
                "available": str(exc.available),
            },
        )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(
        request: Request, exc: LedgerError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error_type": exc.error_type},
        )
