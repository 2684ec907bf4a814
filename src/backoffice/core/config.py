# This project was developed with assistance from AI tools.
"""
Application configuration.

All settings read from environment variables with sensible local dev defaults.
Group related settings together; each group becomes a section future PRs extend.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve project root .env regardless of CWD
_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings -- single source of truth for env-driven config."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- App --
    APP_NAME: str = "Loan Back Office Processing API"
    DEBUG: bool = False

    # -- Job creation --
    BANK_STATEMENT_BATCH_SIZE: int = Field(
        default=6,
        description="Bank-statement documents required before a banking analysis job is created.",
    )
    OCR_RETRY_MIN_INTERVAL_SECONDS: int = Field(
        default=3600,
        description="Minimum time since the last retry before a re-upload re-queues a failed OCR job.",
    )

    # -- Retry policy --
    RETRY_POLICY_ENABLED: bool = Field(
        default=True,
        description="Allow staff to retry failed jobs. Forced retries bypass this switch.",
    )
    RETRY_BASE_DELAY_SECONDS: int = Field(
        default=30,
        description="Base delay for staff-initiated retries; doubles with each retry already made.",
    )
    OCR_MAX_RETRIES: int = 3
    BANKING_MAX_RETRIES: int = 2
    CREDIT_SUMMARY_MAX_RETRIES: int = 1

    # -- Circuit breakers --
    BREAKER_FAILURE_THRESHOLD: int = Field(
        default=3,
        description="Consecutive failures that open a job-creation circuit breaker.",
    )
    BREAKER_COOLDOWN_SECONDS: float = Field(
        default=60.0,
        description="How long an open breaker rejects calls before admitting a trial call.",
    )


settings = Settings()
