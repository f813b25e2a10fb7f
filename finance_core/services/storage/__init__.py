"""
Storage Services Package

Provides abstract interfaces and an in-memory transactional implementation.
The engines only ever talk to the interfaces, so a relational backend can
replace the in-memory one without touching business logic.
"""

from finance_core.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    LedgerStorageInterface,
    LoanStorageInterface,
    RecurringStorageInterface,
    StorageError,
    UnitOfWorkInterface,
)
from finance_core.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryDatabase,
    InMemoryLedgerStorage,
    InMemoryLoanStorage,
    InMemoryRecurringStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "LedgerStorageInterface",
    "LoanStorageInterface",
    "RecurringStorageInterface",
    "UnitOfWorkInterface",
    # Exceptions
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryDatabase",
    "InMemoryLedgerStorage",
    "InMemoryLoanStorage",
    "InMemoryRecurringStorage",
]
