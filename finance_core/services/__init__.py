"""Services package."""

from finance_core.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryDatabase,
    InMemoryLedgerStorage,
    InMemoryLoanStorage,
    InMemoryRecurringStorage,
    LedgerStorageInterface,
    LoanStorageInterface,
    RecurringStorageInterface,
    StorageError,
    UnitOfWorkInterface,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryDatabase",
    "InMemoryLedgerStorage",
    "InMemoryLoanStorage",
    "InMemoryRecurringStorage",
    "LedgerStorageInterface",
    "LoanStorageInterface",
    "RecurringStorageInterface",
    "StorageError",
    "UnitOfWorkInterface",
]
