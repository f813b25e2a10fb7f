"""
Daily Tick Runner

An owned asyncio loop that wakes once per calendar day at the configured
local time and drives:
1. The recurring scheduler's tick
2. The refresh of budgets whose window has closed (optional)

The loop never dies on a failed run: the error is logged and the next
day is awaited as usual. A calendar day that already ran is not run
again, even if the loop is restarted within the same process.
"""

import asyncio
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional

import structlog

from finance_core.audit import AuditLogger
from finance_core.budgets import BudgetService
from finance_core.config import SchedulerSettings, get_settings
from finance_core.models.recurring import TickReport
from finance_core.recurring import RecurringScheduler


logger = structlog.get_logger(__name__)


def seconds_until(now: datetime, hour: int, minute: int) -> float:
    """Seconds from now to the next occurrence of hour:minute (today or tomorrow)."""
    target = datetime.combine(now.date(), time(hour, minute), tzinfo=now.tzinfo)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class DailyTickRunner:
    """Background loop calling the daily tick once per calendar day."""

    def __init__(
        self,
        scheduler: RecurringScheduler,
        budgets: Optional[BudgetService] = None,
        settings: Optional[SchedulerSettings] = None,
        now: Callable[[], datetime] = datetime.now,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._scheduler = scheduler
        self._budgets = budgets
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().scheduler
        self._now = now
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.last_run_date: Optional[date] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, today: Optional[date] = None) -> TickReport:
        """Run one day's work now. Errors propagate to the caller."""
        today = today or self._now().date()
        report = await self._scheduler.process_due_definitions(today)
        if self._settings.refresh_budgets and self._budgets is not None:
            await self._budgets.refresh_expired_budgets(today)
        if not report.skipped:
            self.last_run_date = today
        return report

    async def run_scheduled(self, today: date) -> Optional[TickReport]:
        """Run one day's work as the loop does: a failure is logged and audited, not raised."""
        try:
            return await self.run_once(today)
        except Exception as e:
            logger.error("daily_run_failed", run_date=today.isoformat(), error=str(e), exc_info=True)
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"run_date": today.isoformat()},
                )
            return None

    async def run_forever(self) -> None:
        """Sleep until the configured time, run, repeat until stop()."""
        logger.info(
            "daily_runner_started",
            run_at=f"{self._settings.run_at_hour:02d}:{self._settings.run_at_minute:02d}",
        )
        while not self._stopping.is_set():
            delay = seconds_until(
                self._now(), self._settings.run_at_hour, self._settings.run_at_minute
            )
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            today = self._now().date()
            if self.last_run_date == today:
                continue
            await self.run_scheduled(today)
        logger.info("daily_runner_stopped")

    def start(self) -> asyncio.Task:
        if not self.is_running:
            self._stopping.clear()
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
