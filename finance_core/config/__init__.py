"""Configuration package."""

from finance_core.config.settings import (
    AppSettings,
    SchedulerSettings,
    Settings,
    SystemRecordSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "SchedulerSettings",
    "Settings",
    "SystemRecordSettings",
    "get_settings",
    "validate_all_settings",
]
