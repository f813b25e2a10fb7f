"""
Budget Recalculation Engine

DESIGN DECISION: Budgets are DERIVED state, always recomputed from the
ledger rather than patched with deltas.

Recalculation rules:
1. spent = sum of the owner's expense transactions in the category
   with occurred_on inside [start_date, end_date]
2. remaining = amount - spent (negative when over budget)
3. status = OVER_BUDGET if spent > amount,
            else COMPLETED if end_date < today,
            else ACTIVE

Because every run starts from the ledger, recalculating twice with no
ledger change in between produces identical output, and a missed or
duplicated notification can never leave a budget drifting.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError

from finance_core.audit import AuditLogger
from finance_core.errors import ConfigurationError, NotFoundError, ValidationError
from finance_core.events import ChangeNotifier
from finance_core.models.audit import AuditEventType
from finance_core.models.budget import Budget, BudgetStatus
from finance_core.models.common import ZERO, utc_now
from finance_core.models.ledger import Category, Direction, LedgerTransaction, TransactionChange
from finance_core.services.storage import (
    BudgetStorageInterface,
    LedgerStorageInterface,
    UnitOfWorkInterface,
)


logger = structlog.get_logger(__name__)


def budget_status(amount: Decimal, spent: Decimal, end_date: date, today: date) -> BudgetStatus:
    if spent > amount:
        return BudgetStatus.OVER_BUDGET
    if end_date < today:
        return BudgetStatus.COMPLETED
    return BudgetStatus.ACTIVE


def recalculate_budget(
    budget: Budget,
    transactions: Iterable[LedgerTransaction],
    today: date,
) -> Budget:
    """
    Return a copy of the budget with spent / remaining / status derived
    from the given transactions.

    Transactions outside the budget's owner, category, window or the
    expense direction are ignored, so callers may pass a superset.
    """
    spent = sum(
        (
            t.amount
            for t in transactions
            if t.owner_id == budget.owner_id
            and t.category_id == budget.category_id
            and t.direction == Direction.EXPENSE
            and budget.covers(t.occurred_on)
        ),
        ZERO,
    )
    return budget.model_copy(update={
        "spent_amount": spent,
        "remaining_amount": budget.amount - spent,
        "status": budget_status(budget.amount, spent, budget.end_date, today),
    })


class BudgetService:
    """
    Budget CRUD plus the recalculation engine.

    Call attach() once to subscribe the engine to ledger changes.
    """

    def __init__(
        self,
        storage: BudgetStorageInterface,
        ledger_storage: LedgerStorageInterface,
        unit_of_work: UnitOfWorkInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self._ledger = ledger_storage
        self._uow = unit_of_work
        self._audit_logger = audit_logger
        self._clock = clock

    def attach(self, notifier: ChangeNotifier) -> None:
        notifier.subscribe(self.handle_transaction_change)

    # -------------------------------------------------------------------------
    # Recalculation
    # -------------------------------------------------------------------------

    async def recalculate(self, budget: Budget, today: Optional[date] = None) -> Budget:
        """Recompute one budget from the ledger and persist it."""
        today = today or self._clock()
        transactions = await self._ledger.list_transactions(
            budget.owner_id,
            category_id=budget.category_id,
            direction=Direction.EXPENSE,
            date_from=budget.start_date,
            date_to=budget.end_date,
        )
        updated = recalculate_budget(budget, transactions, today)
        if (
            updated.spent_amount != budget.spent_amount
            or updated.remaining_amount != budget.remaining_amount
            or updated.status != budget.status
        ):
            updated.updated_at = utc_now()

        saved = await self._storage.save_budget(updated)

        logger.debug(
            "budget_recalculated",
            budget_id=str(saved.id),
            spent=str(saved.spent_amount),
            remaining=str(saved.remaining_amount),
            status=saved.status.value,
        )
        if self._audit_logger:
            await self._audit_logger.log_budget_recalculated(
                budget_id=saved.id,
                owner_id=saved.owner_id,
                spent=saved.spent_amount,
                remaining=saved.remaining_amount,
                status=saved.status.value,
            )
        return saved

    async def handle_transaction_change(self, change: TransactionChange) -> None:
        """
        Notifier handler: recompute every budget the change could touch.

        Runs inside the writer's unit of work. A missing category means
        the account is inconsistent; the error aborts the ledger write.
        """
        if change.direction != Direction.EXPENSE:
            return

        today = self._clock()
        seen: set[UUID] = set()
        for category_id, day in change.affected_keys():
            category = await self._ledger.get_category(change.owner_id, category_id)
            if category is None:
                raise ConfigurationError(
                    "Category referenced by a ledger change does not exist for owner.",
                    details={
                        "owner_id": str(change.owner_id),
                        "category_id": str(category_id),
                        "transaction_id": str(change.transaction_id),
                    },
                )

            for budget in await self._storage.find_budgets_covering(
                change.owner_id, category_id, day
            ):
                if budget.id in seen:
                    continue
                seen.add(budget.id)
                await self.recalculate(budget, today)

    async def refresh_expired_budgets(self, today: Optional[date] = None) -> list[Budget]:
        """
        Recompute ACTIVE budgets whose window closed before today.

        Without a ledger change nothing else would flip them to COMPLETED.
        """
        today = today or self._clock()
        refreshed = []
        async with self._uow.transaction():
            for budget in await self._storage.find_budgets_ended_before(today):
                refreshed.append(await self.recalculate(budget, today))
        if refreshed:
            logger.info("expired_budgets_refreshed", count=len(refreshed), run_date=today.isoformat())
        return refreshed

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    async def _budgetable_category(self, owner_id: UUID, category_id: UUID) -> Category:
        category = await self._ledger.get_category(owner_id, category_id)
        if category is None:
            raise NotFoundError(
                "Category not found or access denied.",
                details={"category_id": str(category_id)},
            )
        if not category.is_active:
            raise ValidationError("Cannot create a budget for an inactive category.")
        if not category.is_budgetable:
            raise ValidationError(f"Category '{category.name}' is not budgetable.")
        return category

    async def create_budget(
        self,
        owner_id: UUID,
        category_id: UUID,
        amount: Decimal,
        start_date: date,
        end_date: date,
    ) -> Budget:
        """Create a budget and compute it against the transactions already in its window."""
        if amount is None or amount <= 0:
            raise ValidationError("Budget amount must be positive.")
        try:
            budget = Budget(
                owner_id=owner_id,
                category_id=category_id,
                amount=amount,
                remaining_amount=amount,
                start_date=start_date,
                end_date=end_date,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid budget: {e}")

        async with self._uow.transaction():
            await self._budgetable_category(owner_id, category_id)
            saved = await self.recalculate(budget)
            if self._audit_logger:
                await self._audit_logger.log_entity_event(
                    event_type=AuditEventType.BUDGET_CREATED,
                    entity_type="budget",
                    entity_id=saved.id,
                    owner_id=owner_id,
                    description=f"Budget of {saved.amount} created",
                    details={
                        "category_id": str(category_id),
                        "start_date": start_date.isoformat(),
                        "end_date": end_date.isoformat(),
                    },
                )
            return saved

    async def update_budget(
        self,
        owner_id: UUID,
        budget_id: UUID,
        amount: Optional[Decimal] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category_id: Optional[UUID] = None,
        status: Optional[BudgetStatus] = None,
    ) -> Budget:
        """
        Edit a budget's bounds.

        Changing amount, window or category forces a recalculation, which
        also decides the status. An explicit status is only honoured when
        nothing that drives the recalculation changed.
        """
        if amount is not None and amount <= 0:
            raise ValidationError("Budget amount must be positive.")

        async with self._uow.transaction():
            budget = await self.get_budget(owner_id, budget_id)
            changes: dict = {}

            if amount is not None and amount != budget.amount:
                changes["amount"] = amount
            if start_date is not None and start_date != budget.start_date:
                changes["start_date"] = start_date
            if end_date is not None and end_date != budget.end_date:
                changes["end_date"] = end_date
            if category_id is not None and category_id != budget.category_id:
                await self._budgetable_category(owner_id, category_id)
                changes["category_id"] = category_id

            if changes:
                try:
                    updated = Budget.model_validate({
                        **budget.model_dump(),
                        **changes,
                        "updated_at": utc_now(),
                    })
                except PydanticValidationError as e:
                    raise ValidationError(f"Invalid budget: {e}")
                return await self.recalculate(updated)

            if status is not None and status != budget.status:
                budget.status = status
                budget.updated_at = utc_now()
                return await self._storage.save_budget(budget)

            return budget

    async def delete_budget(self, owner_id: UUID, budget_id: UUID) -> None:
        async with self._uow.transaction():
            budget = await self.get_budget(owner_id, budget_id)
            await self._storage.delete_budget(owner_id, budget_id)
            if self._audit_logger:
                await self._audit_logger.log_entity_event(
                    event_type=AuditEventType.BUDGET_DELETED,
                    entity_type="budget",
                    entity_id=budget.id,
                    owner_id=owner_id,
                    description="Budget deleted",
                )

    async def get_budget(self, owner_id: UUID, budget_id: UUID) -> Budget:
        budget = await self._storage.get_budget(owner_id, budget_id)
        if budget is None:
            raise NotFoundError(
                "Budget not found or access denied.",
                details={"budget_id": str(budget_id)},
            )
        return budget

    async def list_budgets(self, owner_id: UUID) -> list[Budget]:
        return await self._storage.list_budgets(owner_id)
