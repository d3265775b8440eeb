"""
Configuration management for the capital ledger.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from decimal import Decimal
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'  # Allow extra fields in .env for flexibility
    )

    # Database
    database_url: str = "sqlite:///ledger.db"
    db_echo: bool = False
    lock_timeout_ms: int = 5000  # Lock wait before a conflict is reported

    # Ledger
    commission_rate: Decimal = Decimal("0.001")  # 0.1% per trade
    transactions_default_limit: int = 50

    # Market data / valuation refresh
    price_refresh_minutes: int = 15
    price_fetch_workers: int = 5
    price_fetch_attempts: int = 3
    stock_symbol_suffix: str = ".ME"  # MOEX tickers on Yahoo Finance
    crypto_quote_currency: str = "USD"
    base_currency: str = "RUB"

    # Logging
    log_level: str = "INFO"

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured store is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def is_postgres(self) -> bool:
        """Check if the configured store is PostgreSQL."""
        return self.database_url.startswith(("postgresql", "postgres"))


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
