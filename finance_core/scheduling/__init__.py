"""Daily loop package."""

from finance_core.scheduling.runner import DailyTickRunner, seconds_until

__all__ = ["DailyTickRunner", "seconds_until"]
