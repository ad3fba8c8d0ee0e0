"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager — logging, table creation, the shared orchestrator
  2. Exception handlers — maps domain errors to HTTP responses
  3. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn ledger_engine.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from ledger_engine.config import settings
from ledger_engine.database import engine, Base, AsyncSessionLocal
from ledger_engine.exceptions import register_exception_handlers
from ledger_engine.logging_config import setup_logging
from ledger_engine import models  # noqa: F401  (registers every table on Base.metadata)
from ledger_engine.routers import accounts, fraud_alerts, transfers
from ledger_engine.services.transfer_service import TransferOrchestrator

logger = logging.getLogger(__name__)


def _ensure_sqlite_directory(database_url: str) -> None:
    # sqlite+aiosqlite:///./data/ledger.db -> ./data
    if database_url.startswith("sqlite") and ":///" in database_url:
        path = database_url.split(":///", 1)[1]
        if path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      Configures logging, creates all tables if they don't exist, and
      builds the process-wide TransferOrchestrator.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    # --- Startup ---
    setup_logging(settings.LOG_LEVEL)
    _ensure_sqlite_directory(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    app.state.orchestrator = TransferOrchestrator(AsyncSessionLocal, settings)
    logger.info("Ledger engine started", extra={"version": settings.APP_VERSION})
    yield
    # --- Shutdown ---
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Transactional ledger with atomic transfers and synchronous fraud rules",
    lifespan=lifespan,
)

register_exception_handlers(app)

app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(transfers.router, prefix="/transfers", tags=["Transfers"])
app.include_router(fraud_alerts.router, prefix="/fraud-alerts", tags=["Fraud alerts"])


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe for deployment health checks."""
    return {"status": "ok", "version": settings.APP_VERSION}
