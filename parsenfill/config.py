"""
Application configuration using pydantic-settings.

Loads configuration from environment variables (prefix ``PNF_``) with
sensible defaults.
"""
from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PNF_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Model metadata
    model_version: str = "1.0.0"

    # Display formatting
    default_currency: str = "USD"
    currency_precision: int = Field(default=2, ge=0)
    percentage_precision: int = Field(default=2, ge=0)

    # Vacancy defaults (decimal for formulas, percent for converters)
    default_vacancy_rate: Decimal = Field(default=Decimal("0.05"), ge=0, le=1)
    default_vacancy_rate_percent: Decimal = Field(default=Decimal("5"), ge=0, le=100)

    # Converters
    default_stream_name: str = "Imported Revenue"

    # Selective escalation
    review_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
