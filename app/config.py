"""
Procurement Orders - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "Procurement Orders"
    app_env: str = "development"
    debug: bool = False
    api_version: str = "v1"

    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    postgres_user: str = "procurement"
    postgres_password: str = "procurement"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "procurement_orders"
    database_url_async: str = ""
    database_pool_size: int = 5
    database_max_overflow: int = 10

    @property
    def database_url(self) -> str:
        """Async SQLAlchemy URL, built from the postgres_* fields unless set explicitly."""
        if self.database_url_async:
            return self.database_url_async
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # ===========================================
    # PRICING
    # VAT is a fixed jurisdictional rate applied to the order subtotal
    # ===========================================
    vat_rate: Decimal = Decimal("0.15")
    default_shipping_cost: Decimal = Decimal("0.00")

    # ===========================================
    # APPROVAL THRESHOLDS (tenant defaults)
    # Below auto_approve_threshold:        auto-approved
    # [auto_approve, supervisor):          supervisor
    # [supervisor, procurement):           procurement officer
    # >= procurement_threshold:            executive admin
    # ===========================================
    auto_approve_threshold: Decimal = Decimal("5000")
    supervisor_threshold: Decimal = Decimal("20000")
    procurement_threshold: Decimal = Decimal("50000")

    # High-value orders are held at IN_PROCESS until an executive signs off.
    # Zero or negative disables the checkpoint.
    executive_review_threshold: Decimal = Decimal("50000")

    # ===========================================
    # INSTALLMENT PLANS
    # Installments run from the month after ordering through this month
    # ===========================================
    installment_period_end_month: int = 11
    default_debit_day: int = 15

    # ===========================================
    # ORDER ENGINE
    # ===========================================
    order_number_prefix: str = "ORD"
    order_number_max_attempts: int = 3
    transition_max_retries: int = 3

    # ===========================================
    # CORS SETTINGS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()
