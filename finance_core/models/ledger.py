"""
Ledger Models

These models describe money movement and the records it is tagged with:
- Categories and payment channels (user-created or system-generated)
- Ledger transactions (expense / income entries)
- TransactionChange, the notification every ledger write publishes

DESIGN DECISION: Relationships are plain id references. Nothing here
lazily loads another record; services fetch what they need explicitly
through the storage interfaces.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from finance_core.models.common import PositiveAmount, utc_now


# =============================================================================
# ENUMS
# =============================================================================

class Direction(str, Enum):
    """Which way money moves."""
    EXPENSE = "expense"
    INCOME = "income"


class ChangeKind(str, Enum):
    """What happened to a ledger transaction."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class TransactionOrigin(str, Enum):
    """
    Tag for transactions written by automated subsystems.

    User-entered transactions carry no origin.
    """
    RECURRING = "system-generated: recurring"
    LOAN_INSTALLMENT = "system-generated: loan installment"


# =============================================================================
# REFERENCE RECORDS
# =============================================================================

class Category(BaseModel):
    """
    A spending or earning category.

    System-generated categories ("Recurring Payments", "Loan Payments",
    "Loan Repayments") are provisioned once per owner and used only by
    the automated subsystems.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    type: Direction = Field(
        default=Direction.EXPENSE,
        description="Kind of transaction this category groups"
    )
    is_system_generated: bool = False
    is_active: bool = True
    is_budgetable: bool = Field(
        default=True,
        description="Can a budget target this category?"
    )


class PaymentChannel(BaseModel):
    """A payment method (cash, card, the auto-pay channel...)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    is_system_generated: bool = False
    is_active: bool = True


# =============================================================================
# TRANSACTIONS
# =============================================================================

class LedgerTransaction(BaseModel):
    """
    A single expense or income entry.

    Immutable apart from amount / category / date / description /
    channel edits through the ledger's update path. Deletion is hard.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    category_id: UUID
    payment_channel_id: Optional[UUID] = None
    direction: Direction
    amount: PositiveAmount
    occurred_on: date = Field(
        ...,
        description="Date the money moved (drives budget windows)"
    )
    description: Optional[str] = Field(default=None, max_length=255)
    origin: Optional[TransactionOrigin] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_system_generated(self) -> bool:
        return self.origin is not None


class TransactionChange(BaseModel):
    """
    Notification published for every ledger create / update / delete.

    For UPDATED changes, previous_category_id and previous_occurred_on
    hold the values before the edit so subscribers can correct whatever
    the transaction moved out of.
    """

    change_kind: ChangeKind
    transaction_id: UUID
    owner_id: UUID
    category_id: UUID
    occurred_on: date
    direction: Direction
    amount: PositiveAmount

    previous_category_id: Optional[UUID] = None
    previous_occurred_on: Optional[date] = None

    published_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def for_transaction(
        cls,
        transaction: LedgerTransaction,
        change_kind: ChangeKind,
        previous: Optional[LedgerTransaction] = None,
    ) -> "TransactionChange":
        return cls(
            change_kind=change_kind,
            transaction_id=transaction.id,
            owner_id=transaction.owner_id,
            category_id=transaction.category_id,
            occurred_on=transaction.occurred_on,
            direction=transaction.direction,
            amount=transaction.amount,
            previous_category_id=previous.category_id if previous else None,
            previous_occurred_on=previous.occurred_on if previous else None,
        )

    def affected_keys(self) -> list[tuple[UUID, date]]:
        """(category, date) pairs whose aggregates may have changed."""
        keys = [(self.category_id, self.occurred_on)]
        if self.previous_category_id is not None and self.previous_occurred_on is not None:
            previous = (self.previous_category_id, self.previous_occurred_on)
            if previous not in keys:
                keys.append(previous)
        return keys
