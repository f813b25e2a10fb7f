"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for storage operations.
This allows us to:
1. Plug in a real relational store later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building an ORM.
Relationships are id references; every lookup that crosses an owner
boundary takes the owner id, so a record owned by someone else looks
exactly like a missing one.

ATOMICITY: UnitOfWorkInterface.transaction() scopes one atomic unit of
work. Everything written inside it is committed together or rolled back
together. Nested transaction() calls join the outer unit.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import date
from typing import Optional
from uuid import UUID

from finance_core.models.audit import AuditEvent
from finance_core.models.budget import Budget
from finance_core.models.ledger import (
    Category,
    Direction,
    LedgerTransaction,
    PaymentChannel,
)
from finance_core.models.loan import Loan, LoanInstallment
from finance_core.models.recurring import RecurringDefinition


class UnitOfWorkInterface(ABC):
    """Scopes atomic units of work."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """
        Open (or join) a unit of work.

        Usage:
            async with storage.transaction():
                ...

        Raises inside the block roll back every write made in it.
        """
        pass


class LedgerStorageInterface(ABC):
    """
    Ledger transactions and the reference records they are tagged with.
    """

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def get_category(self, owner_id: UUID, category_id: UUID) -> Optional[Category]:
        pass

    @abstractmethod
    async def find_category_by_name(
        self,
        owner_id: UUID,
        name: str,
        system_generated: Optional[bool] = None,
    ) -> Optional[Category]:
        """
        Case-insensitive lookup of a category by name.

        Args:
            system_generated: If set, only match records with that flag
        """
        pass

    @abstractmethod
    async def save_payment_channel(self, channel: PaymentChannel) -> PaymentChannel:
        pass

    @abstractmethod
    async def get_payment_channel(
        self,
        owner_id: UUID,
        channel_id: UUID,
    ) -> Optional[PaymentChannel]:
        pass

    @abstractmethod
    async def find_payment_channel_by_name(
        self,
        owner_id: UUID,
        name: str,
        system_generated: Optional[bool] = None,
    ) -> Optional[PaymentChannel]:
        pass

    @abstractmethod
    async def save_transaction(self, transaction: LedgerTransaction) -> LedgerTransaction:
        """Insert or replace a ledger transaction."""
        pass

    @abstractmethod
    async def get_transaction(
        self,
        owner_id: UUID,
        transaction_id: UUID,
    ) -> Optional[LedgerTransaction]:
        pass

    @abstractmethod
    async def delete_transaction(self, owner_id: UUID, transaction_id: UUID) -> bool:
        """Hard delete. Returns False if nothing was deleted."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        owner_id: UUID,
        category_id: Optional[UUID] = None,
        direction: Optional[Direction] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[LedgerTransaction]:
        """
        List transactions with optional filters.

        Date bounds are inclusive. Results are ordered by occurrence date.
        """
        pass


class BudgetStorageInterface(ABC):
    """Budget persistence."""

    @abstractmethod
    async def save_budget(self, budget: Budget) -> Budget:
        pass

    @abstractmethod
    async def get_budget(self, owner_id: UUID, budget_id: UUID) -> Optional[Budget]:
        pass

    @abstractmethod
    async def delete_budget(self, owner_id: UUID, budget_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_budgets(self, owner_id: UUID) -> list[Budget]:
        pass

    @abstractmethod
    async def find_budgets_covering(
        self,
        owner_id: UUID,
        category_id: UUID,
        day: date,
    ) -> list[Budget]:
        """Budgets for owner + category whose window contains the day."""
        pass

    @abstractmethod
    async def find_budgets_ended_before(self, day: date) -> list[Budget]:
        """ACTIVE budgets (all owners) whose end date is before the day."""
        pass


class RecurringStorageInterface(ABC):
    """
    Recurring definition persistence.

    save_definition implements an optimistic claim: when expected_version
    is given and the stored version differs, ConflictError is raised.
    """

    @abstractmethod
    async def save_definition(
        self,
        definition: RecurringDefinition,
        expected_version: Optional[int] = None,
    ) -> RecurringDefinition:
        """
        Insert or replace a definition, bumping its version.

        Raises:
            ConflictError: If expected_version no longer matches
        """
        pass

    @abstractmethod
    async def get_definition(
        self,
        owner_id: UUID,
        definition_id: UUID,
    ) -> Optional[RecurringDefinition]:
        pass

    @abstractmethod
    async def get_definition_by_id(self, definition_id: UUID) -> Optional[RecurringDefinition]:
        """Unscoped lookup, for the scheduler only."""
        pass

    @abstractmethod
    async def delete_definition(self, owner_id: UUID, definition_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_definitions(self, owner_id: UUID) -> list[RecurringDefinition]:
        pass

    @abstractmethod
    async def find_due_definitions(self, today: date) -> list[RecurringDefinition]:
        """Definitions (all owners) with auto_pay set and next_run_date <= today."""
        pass


class LoanStorageInterface(ABC):
    """Loans and their installments."""

    @abstractmethod
    async def save_loan(self, loan: Loan) -> Loan:
        pass

    @abstractmethod
    async def get_loan(self, owner_id: UUID, loan_id: UUID) -> Optional[Loan]:
        pass

    @abstractmethod
    async def delete_loan(self, owner_id: UUID, loan_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_loans(self, owner_id: UUID) -> list[Loan]:
        pass

    @abstractmethod
    async def save_installment(self, installment: LoanInstallment) -> LoanInstallment:
        pass

    @abstractmethod
    async def get_installment(self, installment_id: UUID) -> Optional[LoanInstallment]:
        pass

    @abstractmethod
    async def delete_installment(self, installment_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_installments(self, loan_id: UUID) -> list[LoanInstallment]:
        """Installments of a loan, ordered by payment date."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events for a correlation id, in chronological order."""
        pass


class StorageError(Exception):
    """Base exception for storage operations (transient by default)."""
    pass

