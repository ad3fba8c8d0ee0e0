"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from ledger_engine.config import settings
    print(settings.HIGH_VALUE_THRESHOLD)
"""

from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Ledger Engine.

    Nothing is required: every option has a working default so the engine
    can start against a local SQLite file out of the box.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Ledger Engine"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    # SQLite for local use; swap to a postgresql+asyncpg URL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/ledger.db"

    # --- Fraud rules ---
    # Single transactions at or above this amount raise HIGH_VALUE_TXN
    HIGH_VALUE_THRESHOLD: Decimal = Field(default=Decimal("250000"), gt=0)
    # Debits at or above this amount count towards the velocity rule
    MEDIUM_THRESHOLD: Decimal = Field(default=Decimal("50000"), gt=0)
    # Trailing window (minutes) for the velocity rule
    WINDOW_MINUTES: int = Field(default=60, gt=0)

    # --- Locking ---
    # How long a transfer waits for its account locks before giving up
    LOCK_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
