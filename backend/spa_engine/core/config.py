# backend/spa_engine/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: Literal["development", "test", "production"] = "development"
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite:///./spa_engine.db",
        description="SQLAlchemy database URL (PostgreSQL in production)",
    )
    database_echo: bool = False
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_statement_timeout_ms: int = Field(
        default=30000, description="Statement timeout applied to PostgreSQL connections"
    )

    # Booking calendar
    opening_hour: int = Field(default=9, ge=0, le=23)
    closing_hour: int = Field(default=21, ge=1, le=24)
    slot_interval_minutes: int = Field(default=30, gt=0)
    min_lead_time_minutes: int = Field(default=120, ge=0)
    booking_lookahead_days: int = Field(default=30, ge=1)
    business_timezone: str = Field(
        default="Africa/Nairobi", description="Fallback timezone for branches without one"
    )

    # Concurrency
    transaction_max_attempts: int = Field(default=3, ge=1)
    transaction_retry_base_delay_s: float = Field(default=0.05, ge=0)

    # Gift vouchers
    voucher_code_length: int = Field(default=12, ge=8, le=32)
    voucher_code_prefix: str = "GV"
    voucher_expiring_soon_days: int = 30
    voucher_message_max_length: int = 500

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _validate_business_hours(self) -> "Settings":
        if self.opening_hour >= self.closing_hour:
            raise ValueError(
                f"opening_hour ({self.opening_hour}) must be before closing_hour ({self.closing_hour})"
            )
        return self

    def get_database_url(self, override: Optional[str] = None) -> str:
        """Get the database URL, preferring an explicit override."""
        return override or self.database_url


settings = Settings()
