"""
Data Models Package

This package contains all Pydantic models used by Finance Core.
All data flowing through the engines must conform to these schemas.
"""

from finance_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finance_core.models.budget import Budget, BudgetStatus
from finance_core.models.ledger import (
    Category,
    ChangeKind,
    Direction,
    LedgerTransaction,
    PaymentChannel,
    TransactionChange,
    TransactionOrigin,
)
from finance_core.models.loan import (
    Loan,
    LoanInstallment,
    LoanStatus,
    LoanSummary,
    LoanType,
)
from finance_core.models.recurring import (
    FireOutcome,
    Frequency,
    RecurringDefinition,
    TickReport,
    advance_run_date,
)

__all__ = [
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Budget models
    "Budget",
    "BudgetStatus",
    # Ledger models
    "Category",
    "ChangeKind",
    "Direction",
    "LedgerTransaction",
    "PaymentChannel",
    "TransactionChange",
    "TransactionOrigin",
    # Loan models
    "Loan",
    "LoanInstallment",
    "LoanStatus",
    "LoanSummary",
    "LoanType",
    # Recurring models
    "FireOutcome",
    "Frequency",
    "RecurringDefinition",
    "TickReport",
    "advance_run_date",
]
