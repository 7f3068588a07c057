"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based
configuration, plus the explicit lending settings object handed to loan creation.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings

from .currency import Currency


class LedgerConfig(BaseSettings):
    """Installment ledger configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_url: str = "installment_ledger.db"  # SQLite path or :memory:

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Lending defaults (mirrors the per-agent settings screen)
    currency: str = "INR"
    default_weekly_rate: str = "0.05"
    default_weeks: int = 24
    default_collection_day: int = 0  # 0=Sunday ... 6=Saturday
    allow_mass_record_past: bool = False

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False


@dataclass(frozen=True)
class LendingSettings:
    """Lending defaults passed explicitly into loan creation"""
    weekly_rate: Decimal = Decimal("0.05")
    default_weeks: int = 24
    collection_day: int = 0
    currency: Currency = Currency.INR
    allow_mass_record_past: bool = False

    @classmethod
    def from_config(cls, ledger_config: Optional[LedgerConfig] = None) -> "LendingSettings":
        """Build lending settings from environment configuration"""
        ledger_config = ledger_config or get_config()
        return cls(
            weekly_rate=Decimal(ledger_config.default_weekly_rate),
            default_weeks=ledger_config.default_weeks,
            collection_day=ledger_config.default_collection_day,
            currency=Currency[ledger_config.currency],
            allow_mass_record_past=ledger_config.allow_mass_record_past,
        )


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
