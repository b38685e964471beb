"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class AmortizationSettings(BaseSettings):
    """Amortization core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="AMORTIZATION_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Decimal arithmetic
    internal_precision: int = 10
    output_precision: int = 2

    # Schedule defaults
    default_payment_frequency: str = "monthly"

    # Skip payment rules
    skip_penalty_rate: Decimal = Decimal("0.02")
    max_skip_payments: int = 12
    skip_penalty_base: Literal["average", "scheduled"] = "average"

    # Partial payment / arrears rules
    arrears_days_increment: int = 30

    # Payment holiday rules
    max_holiday_months: int = 12

    # Logging configuration
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"


# Global configuration instance
config = AmortizationSettings()


def get_config() -> AmortizationSettings:
    """Get global configuration instance"""
    return config


def reload_config() -> AmortizationSettings:
    """Reload configuration from environment"""
    global config
    config = AmortizationSettings()
    return config
