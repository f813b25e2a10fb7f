"""
Main Orchestrator for Finance Core

This module ties together all the components:
1. Storage (one shared unit of work for every engine)
2. Audit logger
3. Change notifier, with the budget engine subscribed
4. Ledger, recurring scheduler, loan ledger
5. The daily tick runner

DESIGN DECISION: Every engine writes ledger entries through the same
LedgerService, so the notifier sees every write regardless of who made it.
"""

from datetime import date, datetime
from typing import Callable, NamedTuple, Optional

from finance_core.audit import AuditLogger
from finance_core.budgets import BudgetService
from finance_core.config import SchedulerSettings, SystemRecordSettings, get_settings
from finance_core.events import ChangeNotifier
from finance_core.ledger import LedgerService
from finance_core.loans import LoanLedger
from finance_core.recurring import RecurringScheduler
from finance_core.scheduling import DailyTickRunner
from finance_core.services.storage import (
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryDatabase,
    InMemoryLedgerStorage,
    InMemoryLoanStorage,
    InMemoryRecurringStorage,
)


def _clock_now(clock: Callable[[], date]) -> Callable[[], datetime]:
    """Wall-clock time of day on the calendar day the engines see."""
    return lambda: datetime.combine(clock(), datetime.now().time())


class AppComponents(NamedTuple):
    database: InMemoryDatabase
    audit_logger: AuditLogger
    notifier: ChangeNotifier
    ledger: LedgerService
    budgets: BudgetService
    recurring: RecurringScheduler
    loans: LoanLedger
    runner: DailyTickRunner


def create_app_components(
    database: Optional[InMemoryDatabase] = None,
    scheduler_settings: Optional[SchedulerSettings] = None,
    system_records: Optional[SystemRecordSettings] = None,
    clock: Callable[[], date] = date.today,
    persist_audit: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        database: Shared store. A fresh in-memory one when None.
        scheduler_settings / system_records: Override the environment.
        clock: Source of "today" for every engine.
        persist_audit: Append audit events to storage, or only log them.
    """
    settings = get_settings()
    scheduler_settings = scheduler_settings or settings.scheduler
    system_records = system_records or settings.system_records
    db = database or InMemoryDatabase()

    audit_logger = AuditLogger(InMemoryAuditStorage(db) if persist_audit else None)
    notifier = ChangeNotifier()

    ledger_storage = InMemoryLedgerStorage(db)
    ledger = LedgerService(
        storage=ledger_storage,
        unit_of_work=db,
        notifier=notifier,
        audit_logger=audit_logger,
        system_records=system_records,
        clock=clock,
    )

    budgets = BudgetService(
        storage=InMemoryBudgetStorage(db),
        ledger_storage=ledger_storage,
        unit_of_work=db,
        audit_logger=audit_logger,
        clock=clock,
    )
    budgets.attach(notifier)

    recurring = RecurringScheduler(
        storage=InMemoryRecurringStorage(db),
        ledger=ledger,
        unit_of_work=db,
        audit_logger=audit_logger,
        settings=scheduler_settings,
        system_records=system_records,
        clock=clock,
    )

    loans = LoanLedger(
        storage=InMemoryLoanStorage(db),
        ledger=ledger,
        unit_of_work=db,
        audit_logger=audit_logger,
        system_records=system_records,
        clock=clock,
    )

    runner = DailyTickRunner(
        scheduler=recurring,
        budgets=budgets,
        settings=scheduler_settings,
        now=_clock_now(clock),
        audit_logger=audit_logger,
    )

    return AppComponents(
        database=db,
        audit_logger=audit_logger,
        notifier=notifier,
        ledger=ledger,
        budgets=budgets,
        recurring=recurring,
        loans=loans,
        runner=runner,
    )
