"""Budget recalculation package."""

from finance_core.budgets.engine import BudgetService, budget_status, recalculate_budget

__all__ = ["BudgetService", "budget_status", "recalculate_budget"]
