"""
Recurring Definition Models

A recurring definition is a template that periodically materializes a
ledger transaction. next_run_date is the ONLY scheduling state: whether
a definition is due is inferred by comparing it to "today" at tick time.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict, Field

from finance_core.models.common import PositiveAmount, utc_now
from finance_core.models.ledger import Direction


class Frequency(str, Enum):
    """How often a definition fires."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


_PERIODS = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(weeks=1),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.YEARLY: relativedelta(years=1),
}


def advance_run_date(current: date, frequency: Frequency) -> date:
    """
    Move a run date forward by exactly one period.

    Month ends are clamped: Jan 31 + 1 month is Feb 28 (or 29), never Mar 3.
    """
    return current + _PERIODS[Frequency(frequency)]


class RecurringDefinition(BaseModel):
    """
    A recurring income or expense.

    auto_pay gates the daily tick only; manual triggers fire regardless.
    version is bumped on every save and used to claim the definition
    during a tick so overlapping ticks cannot fire it twice.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    category_id: UUID = Field(
        ...,
        description="Always the owner's system 'Recurring Payments' category"
    )

    title: str = Field(..., min_length=1, max_length=150)
    amount: PositiveAmount
    direction: Direction
    frequency: Frequency
    next_run_date: date
    auto_pay: bool = False

    version: int = Field(default=0, ge=0)
    last_fired_on: Optional[date] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def is_due(self, today: date) -> bool:
        """Would the daily tick pick this definition up today?"""
        return self.auto_pay and self.next_run_date <= today

    def following_run_date(self) -> date:
        return advance_run_date(self.next_run_date, self.frequency)


# =============================================================================
# TICK RESULTS
# =============================================================================

class FireOutcome(BaseModel):
    """Result of processing one definition during a tick."""

    definition_id: UUID
    owner_id: UUID
    success: bool
    scheduled_for: date = Field(
        ...,
        description="next_run_date when the definition was picked up"
    )
    caught_up: bool = Field(
        default=False,
        description="Was this a missed period fired late?"
    )
    transaction_id: Optional[UUID] = None
    next_run_date: Optional[date] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None


class TickReport(BaseModel):
    """Summary of one daily tick."""

    run_date: date
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    skipped: bool = Field(
        default=False,
        description="True when another tick was already running"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Shared by every audit event the tick logged"
    )
    outcomes: list[FireOutcome] = Field(default_factory=list)

    @property
    def fired_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)
