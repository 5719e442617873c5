# backend/app/core/config.py
import logging
import os
from pathlib import Path
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

from .constants import BRAND_NAME, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    app_name: str = Field(default=BRAND_NAME, description="Brand name used in API metadata")
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: str = Field(default="INFO", description="Root log level")
    allowed_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Origins allowed by CORS",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./gymapp.db",
        description="SQLAlchemy database URL (SQLite or PostgreSQL)",
    )
    database_pool_size: int = Field(default=20, ge=1)
    database_max_overflow: int = Field(default=10, ge=0)
    database_pool_timeout: int = Field(default=30, ge=1)
    database_pool_recycle: int = Field(default=3600, ge=60)
    sqlite_busy_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long a SQLite writer waits for the database lock",
    )

    # Scheduling
    schedule_timezone: str = Field(
        default="UTC",
        description="IANA timezone that weekly schedule HH:MM times are expressed in",
    )
    max_materialization_days: int = Field(default=92, ge=1)

    # Cancellation policy
    member_cancellation_cutoff_hours: float = Field(
        default=24.0,
        ge=0,
        description="Hard cutoff before class start for member-initiated cancellation",
    )
    enforce_member_cancellation_cutoff: bool = Field(
        default=False,
        description="Block member cancellations inside the hard cutoff (refund window still applies)",
    )
    default_cancellation_hours_before_class: float = Field(default=24.0, ge=0)
    default_refund_percentage: int = Field(default=100, ge=0, le=100)

    # Notifications
    notifications_enabled: bool = Field(
        default=True,
        description="Forward booking lifecycle events to the notification dispatcher",
    )

    # Observability
    slow_operation_threshold_seconds: float = Field(default=1.0, gt=0)
    metrics_enabled: bool = Field(default=True)

    # Pagination
    default_page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    max_page_size: int = Field(default=MAX_PAGE_SIZE, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = (value or "INFO").strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return normalized

    @field_validator("schedule_timezone")
    @classmethod
    def _validate_schedule_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("database_url")
    @classmethod
    def _reject_empty_database_url(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("DATABASE_URL must not be empty")
        return value.strip()

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
logger.info(
    "[CONFIG] environment=%s sqlite=%s member_cutoff_enforced=%s",
    settings.environment,
    settings.is_sqlite,
    settings.enforce_member_cancellation_cutoff,
)
