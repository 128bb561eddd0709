"""
Configuration Management for Goal Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Store deadlines, retry budgets and validation bounds are read in one place
and validated at startup instead of being scattered as literals.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Relational store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOAL_LEDGER_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./goal_ledger.db",
        description="SQLAlchemy async database URL"
    )
    operation_timeout_seconds: float = Field(
        default=3.0,
        gt=0.0,
        le=60.0,
        description="Deadline applied to every single store call"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)"
    )

    @field_validator('database_url')
    @classmethod
    def validate_async_driver(cls, v: str) -> str:
        """Only async drivers can be used with the async engine."""
        scheme = v.split("://", 1)[0]
        if "+" not in scheme:
            raise ValueError(
                f"Database URL must name an async driver "
                f"(e.g. postgresql+asyncpg, sqlite+aiosqlite), got: {scheme}"
            )
        return v


class ReconciliationSettings(BaseSettings):
    """Retry budget for goal reconciliation on version conflicts."""

    model_config = SettingsConfigDict(
        env_prefix="GOAL_LEDGER_RECONCILE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Total read-derive-write attempts before surfacing a conflict"
    )
    backoff_min_seconds: float = Field(
        default=0.01,
        ge=0.0,
        description="Lower bound of the jittered wait between attempts"
    )
    backoff_max_seconds: float = Field(
        default=0.25,
        ge=0.0,
        description="Upper bound of the jittered wait between attempts"
    )

    @model_validator(mode='after')
    def validate_backoff_bounds(self) -> 'ReconciliationSettings':
        if self.backoff_max_seconds < self.backoff_min_seconds:
            raise ValueError("backoff_max_seconds cannot be below backoff_min_seconds")
        return self


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="GOAL_LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    # Listing
    default_page_size: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Page size used when the caller does not ask for one"
    )
    max_page_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Largest page a caller may request"
    )

    # Validation bounds
    max_name_length: int = Field(default=500, ge=1)
    max_description_length: int = Field(default=1000, ge=1)
    max_color_length: int = Field(default=32, ge=1)
    max_target_amount: float = Field(
        default=1_000_000_000.0,
        gt=0,
        description="Maximum reasonable goal target (for sanity checking)"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future a progress entry can be dated"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def store(self) -> StoreSettings:
        return StoreSettings()

    @property
    def reconciliation(self) -> ReconciliationSettings:
        return ReconciliationSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings(settings: Optional[Settings] = None) -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus {setting_name}_error
    entries for the groups that failed. Useful for startup checks.
    """
    results = {}
    settings = settings or get_settings()

    for name in ("store", "reconciliation", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
