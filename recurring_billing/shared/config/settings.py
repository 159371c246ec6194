# 📄 File: recurring_billing/shared/config/settings.py
#
# 🧭 Purpose (Layman Explanation):
# The main configuration center that reads all settings from environment variables
# and hands them to the rest of the billing engine in an organized way.
#
# 🧪 Purpose (Technical Summary):
# Pydantic-based settings management with environment variable loading,
# validation, and type safety for billing, scheduling, gateway and logging parameters.
#
# 🔗 Dependencies:
# - pydantic-settings for configuration management
# - python-dotenv (through pydantic-settings) for .env file loading
#
# 🔄 Connected Modules / Calls From:
# - engine.py (engine construction)
# - Payment processor and scheduler (retry and sweep timing)
# - HTTP payment gateway client
# - Logging setup

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Uses Pydantic for validation and type safety. Settings are loaded
    from environment variables with fallback to .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # APPLICATION SETTINGS
    # =========================================================================

    APP_NAME: str = Field(default="Recurring Billing Engine", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    ENVIRONMENT: str = Field(default="development", description="Runtime environment")
    DEBUG: bool = Field(default=False, description="Debug mode flag")

    # =========================================================================
    # LOGGING
    # =========================================================================

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log output format (json or text)")
    LOG_FILE: Optional[str] = Field(None, description="Optional log file path")

    # =========================================================================
    # BILLING POLICY
    # =========================================================================

    BILLING_RETRY_DELAY_SECONDS: int = Field(
        default=24 * 60 * 60,
        description="Fixed delay before a failed billing attempt is retried"
    )
    BILLING_MAX_RETRIES: Optional[int] = Field(
        None,
        description="Retries allowed before a failing subscription expires (None = unlimited)"
    )

    # =========================================================================
    # SCHEDULER
    # =========================================================================

    SCHEDULER_SWEEP_INTERVAL_SECONDS: float = Field(
        default=60.0,
        description="Interval of the safety sweep that re-arms lost entries"
    )
    SCHEDULER_MAX_IDLE_SECONDS: float = Field(
        default=300.0,
        description="Longest the scheduler loop sleeps without re-checking the table"
    )

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    UPCOMING_PAYMENTS_WINDOW_DAYS: int = Field(
        default=7,
        description="Window used for the upcoming payments metric"
    )
    ANALYTICS_CHURN_RATE: float = Field(
        default=2.5,
        description="Churn rate percentage reported by analytics"
    )

    # =========================================================================
    # PLAN CATALOG
    # =========================================================================

    SEED_DEFAULT_PLANS: bool = Field(
        default=True,
        description="Register the built-in plans when the engine is created"
    )

    # =========================================================================
    # PAYMENT GATEWAY
    # =========================================================================

    GATEWAY_BASE_URL: str = Field(
        default="http://localhost:8080/api/v1",
        description="Payment gateway base URL"
    )
    GATEWAY_API_KEY: Optional[str] = Field(None, description="Payment gateway API key")
    GATEWAY_TIMEOUT_SECONDS: float = Field(default=30.0, description="Gateway request timeout")
    GATEWAY_MAX_RETRIES: int = Field(
        default=2,
        description="Transport-level retries for one gateway request"
    )
    GATEWAY_RETRY_BACKOFF_SECONDS: float = Field(
        default=1.0,
        description="Exponential backoff multiplier for gateway transport retries"
    )
    GATEWAY_CIRCUIT_FAILURE_THRESHOLD: int = Field(
        default=5,
        description="Consecutive transport failures before the circuit opens"
    )
    GATEWAY_CIRCUIT_RECOVERY_SECONDS: float = Field(
        default=60.0,
        description="Time the circuit stays open before a trial call"
    )

    # =========================================================================
    # EVENTS
    # =========================================================================

    EVENT_HISTORY_SIZE: int = Field(default=1000, description="Published events kept in memory")

    # =========================================================================
    # VALIDATORS
    # =========================================================================

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {valid_levels}")
        return v.upper()

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log output format."""
        if v.lower() not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v.lower()

    @field_validator("BILLING_MAX_RETRIES")
    @classmethod
    def validate_max_retries(cls, v: Optional[int]) -> Optional[int]:
        """A retry cap, when given, cannot be negative."""
        if v is not None and v < 0:
            raise ValueError("BILLING_MAX_RETRIES must be zero or positive")
        return v

    @field_validator(
        "BILLING_RETRY_DELAY_SECONDS",
        "SCHEDULER_SWEEP_INTERVAL_SECONDS",
        "SCHEDULER_MAX_IDLE_SECONDS",
        "GATEWAY_TIMEOUT_SECONDS",
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================

    @property
    def retry_delay(self) -> timedelta:
        """Delay between a failed attempt and its retry."""
        return timedelta(seconds=self.BILLING_RETRY_DELAY_SECONDS)


# ============================================================================
# SETTINGS FACTORY
# ============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get engine settings singleton.

    Uses lru_cache to ensure settings are loaded only once
    and reused throughout the process lifecycle.

    Returns:
        Settings: Engine settings instance
    """
    return Settings()
