"""
In-Memory Storage Implementation

DESIGN DECISION: The persistence engine is a collaborator, not part of
the core. This backend gives the engines a transactional store that
behaves like one:
1. One unit of work at a time (asyncio.Lock)
2. Snapshot on entry, restore on failure (all-or-nothing)
3. Copies in, copies out (callers never alias stored records)

TRADEOFFS:
- Process-local and volatile (fine for tests, demos and the daily loop)
- Filtering happens in Python

The audit log is deliberately NOT part of the snapshot: a rolled-back
unit of work still leaves its failure events behind.
"""

import asyncio
import copy
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import date
from typing import AsyncIterator, Optional
from uuid import UUID

from finance_core.errors import ConflictError
from finance_core.models.audit import AuditEvent
from finance_core.models.budget import Budget, BudgetStatus
from finance_core.models.ledger import (
    Category,
    Direction,
    LedgerTransaction,
    PaymentChannel,
)
from finance_core.models.loan import Loan, LoanInstallment
from finance_core.models.recurring import RecurringDefinition
from finance_core.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    LedgerStorageInterface,
    LoanStorageInterface,
    RecurringStorageInterface,
    UnitOfWorkInterface,
)


TABLES = (
    "categories",
    "payment_channels",
    "transactions",
    "budgets",
    "definitions",
    "loans",
    "installments",
)


class InMemoryDatabase(UnitOfWorkInterface):
    """
    Shared state for all in-memory storages.

    Each table is a dict keyed by record id.
    """

    def __init__(self):
        self.tables: dict[str, dict[UUID, object]] = {name: {} for name in TABLES}
        self.audit_log: list[AuditEvent] = []
        self._lock = asyncio.Lock()
        self._in_transaction: ContextVar[bool] = ContextVar(
            f"in_transaction_{id(self)}", default=False
        )

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction.get()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Open a unit of work, or join the one already open in this task."""
        if self._in_transaction.get():
            yield
            return

        async with self._lock:
            snapshot = copy.deepcopy(self.tables)
            token = self._in_transaction.set(True)
            try:
                yield
            except BaseException:
                self.tables = snapshot
                raise
            finally:
                self._in_transaction.reset(token)

    def table(self, name: str) -> dict:
        return self.tables[name]


def _copy(record):
    return record.model_copy(deep=True) if record is not None else None


def _owned(record, owner_id: UUID):
    """Return a copy of the record if it belongs to the owner."""
    if record is None or record.owner_id != owner_id:
        return None
    return _copy(record)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger tables: categories, payment channels, transactions."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def save_category(self, category: Category) -> Category:
        self._db.table("categories")[category.id] = _copy(category)
        return _copy(category)

    async def get_category(self, owner_id: UUID, category_id: UUID) -> Optional[Category]:
        return _owned(self._db.table("categories").get(category_id), owner_id)

    async def find_category_by_name(
        self,
        owner_id: UUID,
        name: str,
        system_generated: Optional[bool] = None,
    ) -> Optional[Category]:
        wanted = name.strip().lower()
        for category in self._db.table("categories").values():
            if category.owner_id != owner_id or category.name.lower() != wanted:
                continue
            if system_generated is not None and category.is_system_generated != system_generated:
                continue
            return _copy(category)
        return None

    async def save_payment_channel(self, channel: PaymentChannel) -> PaymentChannel:
        self._db.table("payment_channels")[channel.id] = _copy(channel)
        return _copy(channel)

    async def get_payment_channel(
        self,
        owner_id: UUID,
        channel_id: UUID,
    ) -> Optional[PaymentChannel]:
        return _owned(self._db.table("payment_channels").get(channel_id), owner_id)

    async def find_payment_channel_by_name(
        self,
        owner_id: UUID,
        name: str,
        system_generated: Optional[bool] = None,
    ) -> Optional[PaymentChannel]:
        wanted = name.strip().lower()
        for channel in self._db.table("payment_channels").values():
            if channel.owner_id != owner_id or channel.name.lower() != wanted:
                continue
            if system_generated is not None and channel.is_system_generated != system_generated:
                continue
            return _copy(channel)
        return None

    async def save_transaction(self, transaction: LedgerTransaction) -> LedgerTransaction:
        self._db.table("transactions")[transaction.id] = _copy(transaction)
        return _copy(transaction)

    async def get_transaction(
        self,
        owner_id: UUID,
        transaction_id: UUID,
    ) -> Optional[LedgerTransaction]:
        return _owned(self._db.table("transactions").get(transaction_id), owner_id)

    async def delete_transaction(self, owner_id: UUID, transaction_id: UUID) -> bool:
        table = self._db.table("transactions")
        existing = table.get(transaction_id)
        if existing is None or existing.owner_id != owner_id:
            return False
        del table[transaction_id]
        return True

    async def list_transactions(
        self,
        owner_id: UUID,
        category_id: Optional[UUID] = None,
        direction: Optional[Direction] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[LedgerTransaction]:
        results = []
        for transaction in self._db.table("transactions").values():
            if transaction.owner_id != owner_id:
                continue
            if category_id and transaction.category_id != category_id:
                continue
            if direction and transaction.direction != direction:
                continue
            if date_from and transaction.occurred_on < date_from:
                continue
            if date_to and transaction.occurred_on > date_to:
                continue
            results.append(_copy(transaction))
        results.sort(key=lambda t: (t.occurred_on, t.created_at))
        return results


class InMemoryBudgetStorage(BudgetStorageInterface):
    """Budget table."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def save_budget(self, budget: Budget) -> Budget:
        self._db.table("budgets")[budget.id] = _copy(budget)
        return _copy(budget)

    async def get_budget(self, owner_id: UUID, budget_id: UUID) -> Optional[Budget]:
        return _owned(self._db.table("budgets").get(budget_id), owner_id)

    async def delete_budget(self, owner_id: UUID, budget_id: UUID) -> bool:
        table = self._db.table("budgets")
        existing = table.get(budget_id)
        if existing is None or existing.owner_id != owner_id:
            return False
        del table[budget_id]
        return True

    async def list_budgets(self, owner_id: UUID) -> list[Budget]:
        budgets = [
            _copy(budget)
            for budget in self._db.table("budgets").values()
            if budget.owner_id == owner_id
        ]
        budgets.sort(key=lambda b: (b.start_date, b.created_at))
        return budgets

    async def find_budgets_covering(
        self,
        owner_id: UUID,
        category_id: UUID,
        day: date,
    ) -> list[Budget]:
        return [
            _copy(budget)
            for budget in self._db.table("budgets").values()
            if budget.owner_id == owner_id
            and budget.category_id == category_id
            and budget.covers(day)
        ]

    async def find_budgets_ended_before(self, day: date) -> list[Budget]:
        return [
            _copy(budget)
            for budget in self._db.table("budgets").values()
            if budget.status == BudgetStatus.ACTIVE and budget.end_date < day
        ]


class InMemoryRecurringStorage(RecurringStorageInterface):
    """Recurring definition table with optimistic versioning."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def save_definition(
        self,
        definition: RecurringDefinition,
        expected_version: Optional[int] = None,
    ) -> RecurringDefinition:
        table = self._db.table("definitions")
        current = table.get(definition.id)

        if expected_version is not None:
            if current is None or current.version != expected_version:
                raise ConflictError(
                    "Recurring definition was modified concurrently",
                    details={
                        "definition_id": str(definition.id),
                        "expected_version": expected_version,
                        "stored_version": current.version if current else None,
                    },
                )

        next_version = current.version + 1 if current else definition.version
        stored = definition.model_copy(deep=True, update={"version": next_version})
        table[definition.id] = stored
        return _copy(stored)

    async def get_definition(
        self,
        owner_id: UUID,
        definition_id: UUID,
    ) -> Optional[RecurringDefinition]:
        return _owned(self._db.table("definitions").get(definition_id), owner_id)

    async def get_definition_by_id(self, definition_id: UUID) -> Optional[RecurringDefinition]:
        return _copy(self._db.table("definitions").get(definition_id))

    async def delete_definition(self, owner_id: UUID, definition_id: UUID) -> bool:
        table = self._db.table("definitions")
        existing = table.get(definition_id)
        if existing is None or existing.owner_id != owner_id:
            return False
        del table[definition_id]
        return True

    async def list_definitions(self, owner_id: UUID) -> list[RecurringDefinition]:
        definitions = [
            _copy(definition)
            for definition in self._db.table("definitions").values()
            if definition.owner_id == owner_id
        ]
        definitions.sort(key=lambda d: (d.next_run_date, d.created_at))
        return definitions

    async def find_due_definitions(self, today: date) -> list[RecurringDefinition]:
        due = [
            _copy(definition)
            for definition in self._db.table("definitions").values()
            if definition.is_due(today)
        ]
        due.sort(key=lambda d: (d.next_run_date, d.created_at))
        return due


class InMemoryLoanStorage(LoanStorageInterface):
    """Loan and installment tables."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def save_loan(self, loan: Loan) -> Loan:
        self._db.table("loans")[loan.id] = _copy(loan)
        return _copy(loan)

    async def get_loan(self, owner_id: UUID, loan_id: UUID) -> Optional[Loan]:
        return _owned(self._db.table("loans").get(loan_id), owner_id)

    async def delete_loan(self, owner_id: UUID, loan_id: UUID) -> bool:
        table = self._db.table("loans")
        existing = table.get(loan_id)
        if existing is None or existing.owner_id != owner_id:
            return False
        del table[loan_id]
        return True

    async def list_loans(self, owner_id: UUID) -> list[Loan]:
        loans = [
            _copy(loan)
            for loan in self._db.table("loans").values()
            if loan.owner_id == owner_id
        ]
        loans.sort(key=lambda loan: loan.created_at)
        return loans

    async def save_installment(self, installment: LoanInstallment) -> LoanInstallment:
        self._db.table("installments")[installment.id] = _copy(installment)
        return _copy(installment)

    async def get_installment(self, installment_id: UUID) -> Optional[LoanInstallment]:
        return _copy(self._db.table("installments").get(installment_id))

    async def delete_installment(self, installment_id: UUID) -> bool:
        return self._db.table("installments").pop(installment_id, None) is not None

    async def list_installments(self, loan_id: UUID) -> list[LoanInstallment]:
        installments = [
            _copy(installment)
            for installment in self._db.table("installments").values()
            if installment.loan_id == loan_id
        ]
        installments.sort(key=lambda i: (i.payment_date, i.created_at))
        return installments


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def append_event(self, event: AuditEvent) -> bool:
        self._db.audit_log.append(_copy(event))
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [
            _copy(event)
            for event in self._db.audit_log
            if event.correlation_id == correlation_id
        ]

