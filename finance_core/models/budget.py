"""
Budget Models

A budget is a spending cap for one category over a date window.
spent_amount, remaining_amount and status are DERIVED values: only the
recalculation engine writes them.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from finance_core.models.common import ZERO, NonNegativeAmount, PositiveAmount, utc_now


class BudgetStatus(str, Enum):
    """Budget state as of the last recalculation."""
    ACTIVE = "active"
    OVER_BUDGET = "over_budget"
    COMPLETED = "completed"


class Budget(BaseModel):
    """
    Spending target for a category over [start_date, end_date].

    INVARIANT: remaining_amount == amount - spent_amount after every
    recalculation. remaining_amount goes negative when over budget.
    """

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    category_id: UUID

    amount: PositiveAmount = Field(..., description="Target amount")
    spent_amount: NonNegativeAmount = ZERO
    remaining_amount: Decimal = ZERO

    start_date: date
    end_date: date
    status: BudgetStatus = BudgetStatus.ACTIVE

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_window(self) -> 'Budget':
        """The window must not be inverted."""
        if self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self

    def covers(self, day: date) -> bool:
        """Is the day inside the budget window (inclusive)?"""
        return self.start_date <= day <= self.end_date
