"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup; a malformed value fails fast with a clear error message.

Usage:
    from authority_exchange.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Authority Exchange escrow core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production", "test"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    frontend_url: str = "http://localhost:5173"

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://exchange:exchange_dev"
        "@localhost:5432/authority_exchange"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis (session store) ---
    redis_url: str = "redis://localhost:6379/0"
    session_key_prefix: str = "session"

    # --- Escrow pricing ---
    deposit_percentage: Decimal = Decimal("10")
    min_deposit: Decimal = Decimal("500")
    max_deposit: Decimal = Decimal("10000")
    transaction_fee_percentage: Decimal = Decimal("3")

    # --- Account disputes ---
    dispute_auto_unblock_hours: int = 24
    dispute_sweep_interval_minutes: int = 60
    scheduler_enabled: bool = True

    # --- Premium access ---
    # Comma-separated subscription plans.
    premium_fast_path_plans: str = "ENTERPRISE,VIP_ACCESS"
    premium_blocked_plans: str = "STARTER"
    premium_unlock_cost: int = 1

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def fast_path_plan_list(self) -> list[str]:
        """Parse comma-separated fast-path plans into a list."""
        return _split_csv(self.premium_fast_path_plans)

    @property
    def blocked_plan_list(self) -> list[str]:
        """Parse comma-separated blocked plans into a list."""
        return _split_csv(self.premium_blocked_plans)

    @property
    def sync_database_url(self) -> str:
        """Synchronous database URL for Alembic migrations."""
        return self.database_url.replace("+asyncpg", "+psycopg2")


def _split_csv(value: str) -> list[str]:
    if not value:
        return []
    return [item.strip().upper() for item in value.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
