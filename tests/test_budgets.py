"""Tests for the budget recalculation engine."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from conftest import add_expense
from finance_core.budgets import budget_status, recalculate_budget
from finance_core.errors import ConfigurationError, NotFoundError, ValidationError
from finance_core.models.budget import BudgetStatus
from finance_core.models.ledger import Direction


JAN_START = date(2024, 1, 1)
JAN_END = date(2024, 1, 31)


async def january_budget(app, owner_id, category, amount="100"):
    return await app.budgets.create_budget(
        owner_id, category.id, Decimal(amount), JAN_START, JAN_END
    )


class TestStatusRules:

    @pytest.mark.parametrize("spent,end,expected", [
        ("50", date(2024, 1, 31), BudgetStatus.ACTIVE),
        ("100", date(2024, 1, 15), BudgetStatus.ACTIVE),
        ("150", date(2024, 1, 31), BudgetStatus.OVER_BUDGET),
        ("50", date(2024, 1, 14), BudgetStatus.COMPLETED),
        ("150", date(2024, 1, 14), BudgetStatus.OVER_BUDGET),
    ])
    def test_budget_status(self, spent, end, expected):
        assert budget_status(Decimal("100"), Decimal(spent), end, date(2024, 1, 15)) == expected


class TestRecalculation:

    @pytest.mark.asyncio
    async def test_scenario_add_then_delete_expense(self, app, owner_id, groceries):
        budget = await january_budget(app, owner_id, groceries)

        transaction = await add_expense(app, owner_id, groceries, "30", date(2024, 1, 10))
        budget = await app.budgets.get_budget(owner_id, budget.id)
        assert budget.spent_amount == Decimal("30")
        assert budget.remaining_amount == Decimal("70")
        assert budget.status == BudgetStatus.ACTIVE

        await app.ledger.delete_transaction(owner_id, transaction.id)
        budget = await app.budgets.get_budget(owner_id, budget.id)
        assert budget.spent_amount == Decimal("0")
        assert budget.remaining_amount == Decimal("100")

    @pytest.mark.asyncio
    async def test_creation_counts_existing_transactions(self, app, owner_id, groceries):
        await add_expense(app, owner_id, groceries, "40", date(2024, 1, 3))
        await add_expense(app, owner_id, groceries, "70", date(2024, 1, 20))
        await add_expense(app, owner_id, groceries, "99", date(2024, 2, 1))

        budget = await january_budget(app, owner_id, groceries)
        assert budget.spent_amount == Decimal("110")
        assert budget.remaining_amount == Decimal("-10")
        assert budget.status == BudgetStatus.OVER_BUDGET

    @pytest.mark.asyncio
    async def test_recalculation_is_idempotent(self, app, owner_id, groceries):
        budget = await january_budget(app, owner_id, groceries)
        await add_expense(app, owner_id, groceries, "25", date(2024, 1, 9))

        stored = await app.budgets.get_budget(owner_id, budget.id)
        first = await app.budgets.recalculate(stored)
        second = await app.budgets.recalculate(first)
        assert first.spent_amount == second.spent_amount == Decimal("25")
        assert first.remaining_amount == second.remaining_amount
        assert first.status == second.status

    @pytest.mark.asyncio
    async def test_remaining_invariant_after_every_change(self, app, owner_id, groceries):
        budget = await january_budget(app, owner_id, groceries, "80")
        t1 = await add_expense(app, owner_id, groceries, "30", date(2024, 1, 2))
        await add_expense(app, owner_id, groceries, "60", date(2024, 1, 5))
        await app.ledger.update_transaction(owner_id, t1.id, amount=Decimal("5"))

        stored = await app.budgets.get_budget(owner_id, budget.id)
        assert stored.remaining_amount == stored.amount - stored.spent_amount
        assert stored.spent_amount == Decimal("65")

    @pytest.mark.asyncio
    async def test_moving_a_transaction_updates_both_budgets(self, app, owner_id, groceries):
        dining = await app.ledger.create_category(owner_id, "Dining")
        groceries_budget = await january_budget(app, owner_id, groceries)
        dining_budget = await january_budget(app, owner_id, dining)

        transaction = await add_expense(app, owner_id, groceries, "30", date(2024, 1, 10))
        await app.ledger.update_transaction(owner_id, transaction.id, category_id=dining.id)

        groceries_budget = await app.budgets.get_budget(owner_id, groceries_budget.id)
        dining_budget = await app.budgets.get_budget(owner_id, dining_budget.id)
        assert groceries_budget.spent_amount == Decimal("0")
        assert dining_budget.spent_amount == Decimal("30")

    @pytest.mark.asyncio
    async def test_moving_a_transaction_out_of_the_window(self, app, owner_id, groceries):
        budget = await january_budget(app, owner_id, groceries)
        transaction = await add_expense(app, owner_id, groceries, "30", date(2024, 1, 10))
        await app.ledger.update_transaction(owner_id, transaction.id, occurred_on=date(2024, 2, 2))

        budget = await app.budgets.get_budget(owner_id, budget.id)
        assert budget.spent_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_income_does_not_count(self, app, owner_id, groceries):
        budget = await january_budget(app, owner_id, groceries)
        recurring = await app.ledger.lookup_system_category(owner_id, "Recurring Payments")
        recurring_budget = await january_budget(app, owner_id, recurring)

        await app.ledger.create_transaction(
            owner_id=owner_id,
            category_id=recurring.id,
            amount=Decimal("500"),
            direction=Direction.INCOME,
            occurred_on=date(2024, 1, 10),
        )
        recurring_budget = await app.budgets.get_budget(owner_id, recurring_budget.id)
        assert recurring_budget.spent_amount == Decimal("0")
        assert (await app.budgets.get_budget(owner_id, budget.id)).spent_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_missing_category_aborts_the_write(self, app, owner_id, groceries):
        transaction = await add_expense(app, owner_id, groceries, "30", date(2024, 1, 10))
        del app.database.tables["categories"][groceries.id]

        with pytest.raises(ConfigurationError):
            await app.ledger.delete_transaction(owner_id, transaction.id)
        assert await app.ledger.get_transaction(owner_id, transaction.id)

    def test_pure_recalculation_ignores_unrelated_rows(self):
        from finance_core.models.budget import Budget
        from finance_core.models.ledger import LedgerTransaction

        owner, category = uuid4(), uuid4()
        budget = Budget(
            owner_id=owner,
            category_id=category,
            amount=Decimal("100"),
            start_date=JAN_START,
            end_date=JAN_END,
        )

        def row(**kw):
            fields = dict(
                owner_id=owner,
                category_id=category,
                direction=Direction.EXPENSE,
                amount=Decimal("10"),
                occurred_on=date(2024, 1, 5),
            )
            fields.update(kw)
            return LedgerTransaction(**fields)

        rows = [
            row(),
            row(owner_id=uuid4()),
            row(category_id=uuid4()),
            row(direction=Direction.INCOME),
            row(occurred_on=date(2023, 12, 31)),
        ]
        result = recalculate_budget(budget, rows, date(2024, 1, 15))
        assert result.spent_amount == Decimal("10")
        assert result.remaining_amount == Decimal("90")


class TestBudgetLifecycle:

    @pytest.mark.asyncio
    async def test_create_validation(self, app, owner_id, groceries, salary):
        with pytest.raises(ValidationError):
            await app.budgets.create_budget(owner_id, groceries.id, Decimal("0"), JAN_START, JAN_END)
        with pytest.raises(ValidationError):
            await app.budgets.create_budget(owner_id, groceries.id, Decimal("10"), JAN_END, JAN_START)
        with pytest.raises(NotFoundError):
            await app.budgets.create_budget(owner_id, uuid4(), Decimal("10"), JAN_START, JAN_END)

        repayments = await app.ledger.lookup_system_category(owner_id, "Loan Repayments")
        with pytest.raises(ValidationError):
            await app.budgets.create_budget(owner_id, repayments.id, Decimal("10"), JAN_START, JAN_END)

    @pytest.mark.asyncio
    async def test_editing_bounds_recalculates(self, app, owner_id, groceries):
        budget = await january_budget(app, owner_id, groceries)
        await add_expense(app, owner_id, groceries, "30", date(2024, 1, 10))
        await add_expense(app, owner_id, groceries, "50", date(2024, 2, 10))

        widened = await app.budgets.update_budget(
            owner_id, budget.id, end_date=date(2024, 2, 29), amount=Decimal("70")
        )
        assert widened.spent_amount == Decimal("80")
        assert widened.remaining_amount == Decimal("-10")
        assert widened.status == BudgetStatus.OVER_BUDGET

    @pytest.mark.asyncio
    async def test_explicit_status_without_bound_change(self, app, owner_id, groceries):
        budget = await january_budget(app, owner_id, groceries)
        updated = await app.budgets.update_budget(
            owner_id, budget.id, status=BudgetStatus.COMPLETED
        )
        assert updated.status == BudgetStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_delete_and_ownership(self, app, owner_id, groceries):
        budget = await january_budget(app, owner_id, groceries)
        with pytest.raises(NotFoundError):
            await app.budgets.get_budget(uuid4(), budget.id)

        await app.budgets.delete_budget(owner_id, budget.id)
        assert await app.budgets.list_budgets(owner_id) == []

    @pytest.mark.asyncio
    async def test_expired_budgets_complete_as_time_passes(self, app, owner_id, groceries, clock):
        budget = await january_budget(app, owner_id, groceries)
        assert budget.status == BudgetStatus.ACTIVE

        clock.today = date(2024, 2, 1)
        refreshed = await app.budgets.refresh_expired_budgets()
        assert [b.id for b in refreshed] == [budget.id]
        assert (await app.budgets.get_budget(owner_id, budget.id)).status == BudgetStatus.COMPLETED

        assert await app.budgets.refresh_expired_budgets() == []
