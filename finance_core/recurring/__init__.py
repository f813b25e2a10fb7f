"""Recurring transaction scheduler package."""

from finance_core.recurring.scheduler import RecurringScheduler

__all__ = ["RecurringScheduler"]
