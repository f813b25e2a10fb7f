"""
Configuration Management for Finance Core

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The names of the fixed system records and the scheduler timing are the
only knobs; everything else is derived from stored data.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SystemRecordSettings(BaseSettings):
    """
    Names of the per-owner records reserved for automated subsystems.

    These are looked up by name at firing time; a missing record is a
    configuration error for that owner.
    """

    model_config = SettingsConfigDict(
        env_prefix="SYSTEM_",
        extra="ignore"
    )

    recurring_category: str = Field(
        default="Recurring Payments",
        description="Category used for every recurring firing"
    )
    loan_payments_category: str = Field(
        default="Loan Payments",
        description="Expense category for installments on TAKEN loans"
    )
    loan_repayments_category: str = Field(
        default="Loan Repayments",
        description="Income category for installments on GIVEN loans"
    )
    auto_pay_channel: str = Field(
        default="RECURRING_AUTO_PAY",
        description="Payment channel for recurring firings"
    )
    default_channel: str = Field(
        default="Cash",
        description="Payment channel used when none is supplied"
    )


class SchedulerSettings(BaseSettings):
    """Daily tick configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Run the daily loop at all"
    )
    run_at_hour: int = Field(
        default=0,
        ge=0,
        le=23,
        description="Local hour at which the daily tick runs"
    )
    run_at_minute: int = Field(
        default=0,
        ge=0,
        le=59,
    )
    # Transient storage failures during a firing
    fire_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per definition before it is reported as failed"
    )
    fire_retry_min_seconds: float = Field(default=0.5, ge=0.0)
    fire_retry_max_seconds: float = Field(default=5.0, ge=0.0)
    refresh_budgets: bool = Field(
        default=True,
        description="Recalculate budgets whose window closed during the tick"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

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
        description="Root log level"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
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

    @property
    def system_records(self) -> SystemRecordSettings:
        return SystemRecordSettings()

    @property
    def scheduler(self) -> SchedulerSettings:
        return SchedulerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("system_records", "scheduler", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
