"""
Loan Models

A loan is either TAKEN (the owner borrowed and repays) or GIVEN (the
owner lent and is repaid). Its remaining balance is maintained by the
installment ledger.

INVARIANTS (after every installment add / remove / amount edit):
- 0 <= remaining_amount <= original_amount
- remaining_amount == original_amount - sum(installment.amount_paid),
  unless an overpayment was clamped to zero
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from finance_core.models.common import ZERO, NonNegativeAmount, PositiveAmount, utc_now


class LoanType(str, Enum):
    TAKEN = "taken"
    GIVEN = "given"


class LoanStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Loan(BaseModel):
    """A loan between the owner and a counterparty."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    type: LoanType
    person_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Counterparty name"
    )

    original_amount: PositiveAmount
    remaining_amount: NonNegativeAmount
    status: LoanStatus = LoanStatus.ACTIVE

    # Informational only: no interest accrual is computed
    interest_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=255)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_balance(self) -> 'Loan':
        if self.remaining_amount > self.original_amount:
            raise ValueError("Remaining amount cannot exceed original amount")
        return self

    @property
    def paid_amount(self) -> Decimal:
        """Amount already paid under the current terms."""
        return self.original_amount - self.remaining_amount


class LoanInstallment(BaseModel):
    """
    A single payment against a loan.

    Installments are never edited in place: they are recorded or reversed.
    ledger_transaction_id links the installment to the ledger entry that
    recording it produced.
    """

    id: UUID = Field(default_factory=uuid4)
    loan_id: UUID
    amount_paid: PositiveAmount
    payment_date: date
    payment_channel_id: Optional[UUID] = None
    auto_generated: bool = False
    notes: Optional[str] = Field(default=None, max_length=255)
    ledger_transaction_id: Optional[UUID] = None

    created_at: datetime = Field(default_factory=utc_now)


class LoanSummary(BaseModel):
    """Aggregate view over all loans of one owner."""

    owner_id: UUID
    total_taken: Decimal = ZERO
    total_given: Decimal = ZERO
    total_outstanding: Decimal = ZERO
    total_paid_on_taken: Decimal = ZERO
    total_received_on_given: Decimal = ZERO
    active_count: int = Field(default=0, ge=0)
    closed_count: int = Field(default=0, ge=0)
