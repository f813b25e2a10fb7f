"""
Loan Installment Ledger

Maintains each loan's remaining balance and open/closed state as
installments are recorded and reversed.

Balance rules:
1. Recording a payment subtracts it; a result <= 0 is clamped to 0 and
   the loan CLOSES
2. Reversing a payment recomputes the balance from the installments
   still attached and REOPENS a closed loan whose balance is back above 0
3. Editing the original amount keeps what was already paid:
   remaining = max(0, new_original - sum of installments)
4. A loan may be closed by hand only at a zero balance, and deleted
   only while it has no installments

Every recorded payment also writes one ledger transaction through the
normal ledger path (expense for TAKEN loans, income for GIVEN loans).
The installment keeps the id of that transaction.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError

from finance_core.audit import AuditLogger
from finance_core.config import SystemRecordSettings, get_settings
from finance_core.errors import NotFoundError, ValidationError
from finance_core.ledger import LedgerService
from finance_core.models.audit import AuditEventType
from finance_core.models.common import ZERO, utc_now
from finance_core.models.ledger import Direction, TransactionOrigin
from finance_core.models.loan import (
    Loan,
    LoanInstallment,
    LoanStatus,
    LoanSummary,
    LoanType,
)
from finance_core.services.storage import LoanStorageInterface, UnitOfWorkInterface


logger = structlog.get_logger(__name__)


def balance_from_installments(original: Decimal, installments: list[LoanInstallment]) -> Decimal:
    """Outstanding balance implied by the attached installments, within [0, original]."""
    paid = sum((i.amount_paid for i in installments), ZERO)
    return min(max(original - paid, ZERO), original)


class LoanLedger:
    """Owner-scoped loan and installment operations."""

    def __init__(
        self,
        storage: LoanStorageInterface,
        ledger: LedgerService,
        unit_of_work: UnitOfWorkInterface,
        audit_logger: Optional[AuditLogger] = None,
        system_records: Optional[SystemRecordSettings] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self._ledger = ledger
        self._uow = unit_of_work
        self._audit_logger = audit_logger
        self._system_records = system_records or get_settings().system_records
        self._clock = clock

    # -------------------------------------------------------------------------
    # Loans
    # -------------------------------------------------------------------------

    async def create_loan(
        self,
        owner_id: UUID,
        type: LoanType,
        person_name: str,
        original_amount: Decimal,
        interest_rate: Optional[Decimal] = None,
        start_date: Optional[date] = None,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Loan:
        if original_amount is None or original_amount <= 0:
            raise ValidationError("Original amount must be greater than 0.")
        if not person_name or not person_name.strip():
            raise ValidationError("Person name cannot be empty.")

        try:
            loan = Loan(
                owner_id=owner_id,
                type=type,
                person_name=person_name,
                original_amount=original_amount,
                remaining_amount=original_amount,
                interest_rate=interest_rate,
                start_date=start_date,
                due_date=due_date,
                notes=notes,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid loan: {e}")

        async with self._uow.transaction():
            saved = await self._storage.save_loan(loan)
            if self._audit_logger:
                await self._audit_logger.log_entity_event(
                    event_type=AuditEventType.LOAN_CREATED,
                    entity_type="loan",
                    entity_id=saved.id,
                    owner_id=owner_id,
                    description=f"Loan {saved.type.value} with {saved.person_name}: {saved.original_amount}",
                )
            return saved

    async def update_loan(
        self,
        owner_id: UUID,
        loan_id: UUID,
        person_name: Optional[str] = None,
        original_amount: Optional[Decimal] = None,
        type: Optional[LoanType] = None,
        notes: Optional[str] = None,
        start_date: Optional[date] = None,
        due_date: Optional[date] = None,
        interest_rate: Optional[Decimal] = None,
        status: Optional[LoanStatus] = None,
    ) -> Loan:
        """
        Edit loan terms. Only the fields passed are changed.

        A new original amount keeps the amount already paid and closes
        the loan when nothing is left (or reopens it when something is).
        status=CLOSED follows the manual close rule; reopening by hand is
        not allowed.
        """
        if original_amount is not None and original_amount <= 0:
            raise ValidationError("Original amount must be greater than 0.")

        async with self._uow.transaction():
            loan = await self.get_loan(owner_id, loan_id)
            was_closed = loan.status == LoanStatus.CLOSED
            changes: dict = {}

            if person_name is not None:
                changes["person_name"] = person_name
            if type is not None:
                changes["type"] = type
            if notes is not None:
                changes["notes"] = notes
            if start_date is not None:
                changes["start_date"] = start_date
            if due_date is not None:
                changes["due_date"] = due_date
            if interest_rate is not None:
                changes["interest_rate"] = interest_rate

            if original_amount is not None:
                remaining = balance_from_installments(
                    original_amount, await self._storage.list_installments(loan.id)
                )
                changes["original_amount"] = original_amount
                changes["remaining_amount"] = remaining
                changes["status"] = LoanStatus.CLOSED if remaining == 0 else LoanStatus.ACTIVE

            if status is not None and status != changes.get("status", loan.status):
                if status == LoanStatus.ACTIVE:
                    raise ValidationError("A closed loan cannot be reopened manually.")
                if changes.get("remaining_amount", loan.remaining_amount) != 0:
                    raise ValidationError(
                        "Cannot close loan manually unless remaining amount is zero."
                    )
                changes["status"] = LoanStatus.CLOSED

            try:
                updated = Loan.model_validate({
                    **loan.model_dump(),
                    **changes,
                    "updated_at": utc_now(),
                })
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid loan: {e}")

            saved = await self._storage.save_loan(updated)
            await self._log_status_change(saved, was_closed, reason="loan terms updated")
            return saved

    async def close_loan(self, owner_id: UUID, loan_id: UUID) -> Loan:
        """Close a fully paid loan by hand."""
        async with self._uow.transaction():
            loan = await self.get_loan(owner_id, loan_id)
            if loan.remaining_amount != 0:
                raise ValidationError(
                    "Cannot close loan manually unless remaining amount is zero.",
                    details={"remaining_amount": str(loan.remaining_amount)},
                )
            was_closed = loan.status == LoanStatus.CLOSED
            loan.status = LoanStatus.CLOSED
            loan.updated_at = utc_now()
            saved = await self._storage.save_loan(loan)
            await self._log_status_change(saved, was_closed, reason="closed manually")
            return saved

    async def delete_loan(self, owner_id: UUID, loan_id: UUID) -> None:
        """Hard-delete a loan that has no payment history."""
        async with self._uow.transaction():
            loan = await self.get_loan(owner_id, loan_id)
            if await self._storage.list_installments(loan.id):
                raise ValidationError(
                    "Loan cannot be deleted because it has installment records.",
                    details={"loan_id": str(loan.id)},
                )
            await self._storage.delete_loan(owner_id, loan.id)
            if self._audit_logger:
                await self._audit_logger.log_entity_event(
                    event_type=AuditEventType.LOAN_DELETED,
                    entity_type="loan",
                    entity_id=loan.id,
                    owner_id=owner_id,
                    description=f"Loan with {loan.person_name} deleted",
                )

    async def get_loan(self, owner_id: UUID, loan_id: UUID) -> Loan:
        loan = await self._storage.get_loan(owner_id, loan_id)
        if loan is None:
            raise NotFoundError(
                "Loan not found or access denied.",
                details={"loan_id": str(loan_id)},
            )
        return loan

    async def list_loans(
        self,
        owner_id: UUID,
        include_closed: bool = True,
        start_from: Optional[date] = None,
        start_to: Optional[date] = None,
    ) -> list[Loan]:
        """
        The owner's loans, optionally only active ones.

        With a start date range, loans without a start date are left out.
        """
        if start_from and start_to and start_to < start_from:
            raise ValidationError("End date cannot be before start date.")

        loans = await self._storage.list_loans(owner_id)
        if not include_closed:
            loans = [loan for loan in loans if loan.status == LoanStatus.ACTIVE]
        if start_from or start_to:
            loans = [
                loan for loan in loans
                if loan.start_date is not None
                and (start_from is None or loan.start_date >= start_from)
                and (start_to is None or loan.start_date <= start_to)
            ]
        return loans

    async def loan_summary(self, owner_id: UUID) -> LoanSummary:
        summary = LoanSummary(owner_id=owner_id)
        for loan in await self._storage.list_loans(owner_id):
            if loan.type == LoanType.TAKEN:
                summary.total_taken += loan.original_amount
                summary.total_paid_on_taken += loan.paid_amount
            else:
                summary.total_given += loan.original_amount
                summary.total_received_on_given += loan.paid_amount
            summary.total_outstanding += loan.remaining_amount
            if loan.status == LoanStatus.ACTIVE:
                summary.active_count += 1
            else:
                summary.closed_count += 1
        return summary

    # -------------------------------------------------------------------------
    # Installments
    # -------------------------------------------------------------------------

    async def record_payment(
        self,
        owner_id: UUID,
        loan_id: UUID,
        amount: Decimal,
        payment_date: Optional[date] = None,
        payment_channel_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> tuple[Loan, LoanInstallment]:
        """
        Apply a payment to a loan and record it in the ledger.

        Raises:
            ValidationError: Loan closed or amount not positive
            NotFoundError: Loan or payment channel not owned by the caller
            ConfigurationError: Loan system category or default channel missing
        """
        async with self._uow.transaction():
            loan = await self.get_loan(owner_id, loan_id)
            if loan.status == LoanStatus.CLOSED:
                raise ValidationError("Cannot add installment to a closed loan.")
            if amount is None or amount <= 0:
                raise ValidationError("Installment amount must be greater than 0.")

            payment_date = payment_date or self._clock()
            channel = await self._ledger.resolve_payment_channel(owner_id, payment_channel_id)

            if loan.type == LoanType.TAKEN:
                category_name = self._system_records.loan_payments_category
                direction = Direction.EXPENSE
                description = f"Installment for loan with {loan.person_name}"
            else:
                category_name = self._system_records.loan_repayments_category
                direction = Direction.INCOME
                description = f"Repayment from {loan.person_name}"
            category = await self._ledger.lookup_system_category(owner_id, category_name)

            transaction = await self._ledger.create_transaction(
                owner_id=owner_id,
                category_id=category.id,
                amount=amount,
                direction=direction,
                occurred_on=payment_date,
                payment_channel_id=channel.id,
                description=description,
                origin=TransactionOrigin.LOAN_INSTALLMENT,
            )

            try:
                installment = LoanInstallment(
                    loan_id=loan.id,
                    amount_paid=amount,
                    payment_date=payment_date,
                    payment_channel_id=channel.id,
                    notes=notes,
                    ledger_transaction_id=transaction.id,
                )
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid installment: {e}")
            installment = await self._storage.save_installment(installment)

            remaining = loan.remaining_amount - amount
            if remaining <= 0:
                loan.remaining_amount = ZERO
                loan.status = LoanStatus.CLOSED
            else:
                loan.remaining_amount = remaining
            loan.updated_at = utc_now()
            saved = await self._storage.save_loan(loan)

            logger.info(
                "loan_payment_recorded",
                loan_id=str(saved.id),
                amount=str(amount),
                remaining=str(saved.remaining_amount),
            )
            if self._audit_logger:
                await self._audit_logger.log_loan_payment_recorded(
                    loan_id=saved.id,
                    owner_id=owner_id,
                    installment_id=installment.id,
                    amount=amount,
                    remaining=saved.remaining_amount,
                )
                await self._log_status_change(saved, was_closed=False, reason="fully paid")
            return saved, installment

    async def reverse_payment(
        self,
        owner_id: UUID,
        loan_id: UUID,
        installment_id: UUID,
        remove_ledger_entry: bool = False,
    ) -> Loan:
        """
        Delete an installment and restore the balance it paid off.

        The ledger transaction the payment produced is kept unless
        remove_ledger_entry is set, in which case it is deleted through
        the ledger path (so budgets follow).
        """
        async with self._uow.transaction():
            loan = await self.get_loan(owner_id, loan_id)
            installment = await self._storage.get_installment(installment_id)
            if installment is None or installment.loan_id != loan.id:
                raise NotFoundError(
                    "Installment not found for this loan.",
                    details={"loan_id": str(loan.id), "installment_id": str(installment_id)},
                )

            await self._storage.delete_installment(installment.id)

            ledger_entry_removed = False
            if remove_ledger_entry and installment.ledger_transaction_id is not None:
                await self._ledger.delete_transaction(owner_id, installment.ledger_transaction_id)
                ledger_entry_removed = True

            was_closed = loan.status == LoanStatus.CLOSED
            remaining = balance_from_installments(
                loan.original_amount, await self._storage.list_installments(loan.id)
            )
            loan.remaining_amount = remaining
            if was_closed and remaining > 0:
                loan.status = LoanStatus.ACTIVE
            loan.updated_at = utc_now()
            saved = await self._storage.save_loan(loan)

            if self._audit_logger:
                await self._audit_logger.log_loan_payment_reversed(
                    loan_id=saved.id,
                    owner_id=owner_id,
                    installment_id=installment.id,
                    amount=installment.amount_paid,
                    remaining=saved.remaining_amount,
                    ledger_entry_removed=ledger_entry_removed,
                )
            await self._log_status_change(saved, was_closed, reason="payment reversed")
            return saved

    async def list_installments(self, owner_id: UUID, loan_id: UUID) -> list[LoanInstallment]:
        loan = await self.get_loan(owner_id, loan_id)
        return await self._storage.list_installments(loan.id)

    async def _log_status_change(self, loan: Loan, was_closed: bool, reason: str) -> None:
        closed = loan.status == LoanStatus.CLOSED
        if closed == was_closed or not self._audit_logger:
            return
        await self._audit_logger.log_loan_status_changed(
            loan_id=loan.id,
            owner_id=loan.owner_id,
            closed=closed,
            reason=reason,
        )
