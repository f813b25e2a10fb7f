"""
Tests for Finance Core models

Test strategy:
1. Unit tests for models and pure helpers (this module)
2. Engine tests run against the in-memory stack (see conftest.py)
3. No external services involved anywhere
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from finance_core.errors import ConflictError, ErrorKind, NotFoundError
from finance_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finance_core.models.budget import Budget, BudgetStatus
from finance_core.models.ledger import (
    ChangeKind,
    Direction,
    LedgerTransaction,
    TransactionChange,
    TransactionOrigin,
)
from finance_core.models.loan import Loan, LoanType
from finance_core.models.recurring import (
    Frequency,
    RecurringDefinition,
    advance_run_date,
)


def make_transaction(**overrides) -> LedgerTransaction:
    fields = dict(
        owner_id=uuid4(),
        category_id=uuid4(),
        payment_channel_id=uuid4(),
        direction=Direction.EXPENSE,
        amount=Decimal("30.00"),
        occurred_on=date(2024, 1, 10),
    )
    fields.update(overrides)
    return LedgerTransaction(**fields)


class TestLedgerModels:
    """Tests for ledger transactions and change notifications."""

    def test_transaction_rejects_non_positive_amount(self):
        with pytest.raises(ValidationError):
            make_transaction(amount=Decimal("0"))

    def test_origin_marks_system_generated(self):
        assert make_transaction().is_system_generated is False
        assert make_transaction(origin=TransactionOrigin.RECURRING).is_system_generated is True

    def test_change_for_created_transaction(self):
        transaction = make_transaction()
        change = TransactionChange.for_transaction(transaction, ChangeKind.CREATED)
        assert change.transaction_id == transaction.id
        assert change.previous_category_id is None
        assert change.affected_keys() == [(transaction.category_id, transaction.occurred_on)]

    def test_updated_change_covers_previous_category_and_date(self):
        before = make_transaction()
        after = before.model_copy(update={
            "category_id": uuid4(),
            "occurred_on": date(2024, 2, 3),
        })
        change = TransactionChange.for_transaction(after, ChangeKind.UPDATED, previous=before)
        assert change.affected_keys() == [
            (after.category_id, date(2024, 2, 3)),
            (before.category_id, date(2024, 1, 10)),
        ]

    def test_updated_change_without_move_has_one_key(self):
        before = make_transaction()
        after = before.model_copy(update={"amount": Decimal("45.00")})
        change = TransactionChange.for_transaction(after, ChangeKind.UPDATED, previous=before)
        assert len(change.affected_keys()) == 1


class TestBudgetModel:

    def test_window_cannot_be_inverted(self):
        with pytest.raises(ValidationError):
            Budget(
                owner_id=uuid4(),
                category_id=uuid4(),
                amount=Decimal("100"),
                start_date=date(2024, 1, 31),
                end_date=date(2024, 1, 1),
            )

    def test_covers_is_inclusive(self):
        budget = Budget(
            owner_id=uuid4(),
            category_id=uuid4(),
            amount=Decimal("100"),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
        )
        assert budget.covers(date(2024, 1, 1))
        assert budget.covers(date(2024, 1, 31))
        assert not budget.covers(date(2024, 2, 1))
        assert budget.status == BudgetStatus.ACTIVE


class TestRecurringDates:
    """Period arithmetic used by the scheduler."""

    def test_month_end_is_clamped(self):
        assert advance_run_date(date(2024, 1, 31), Frequency.MONTHLY) == date(2024, 2, 29)
        assert advance_run_date(date(2023, 1, 31), Frequency.MONTHLY) == date(2023, 2, 28)

    def test_months_roll_over_the_year(self):
        assert advance_run_date(date(2024, 12, 15), Frequency.MONTHLY) == date(2025, 1, 15)

    def test_leap_day_yearly(self):
        assert advance_run_date(date(2024, 2, 29), Frequency.YEARLY) == date(2025, 2, 28)

    @pytest.mark.parametrize("frequency,expected", [
        (Frequency.DAILY, date(2024, 1, 2)),
        (Frequency.WEEKLY, date(2024, 1, 8)),
        (Frequency.MONTHLY, date(2024, 2, 1)),
        (Frequency.YEARLY, date(2025, 1, 1)),
    ])
    def test_advance_one_period(self, frequency, expected):
        assert advance_run_date(date(2024, 1, 1), frequency) == expected

    def test_is_due_requires_auto_pay(self):
        definition = RecurringDefinition(
            owner_id=uuid4(),
            category_id=uuid4(),
            title="Rent",
            amount=Decimal("900"),
            direction=Direction.EXPENSE,
            frequency=Frequency.MONTHLY,
            next_run_date=date(2024, 1, 1),
        )
        assert not definition.is_due(date(2024, 1, 3))
        definition.auto_pay = True
        assert definition.is_due(date(2024, 1, 3))
        assert not definition.is_due(date(2023, 12, 31))


class TestLoanModel:

    def test_remaining_cannot_exceed_original(self):
        with pytest.raises(ValidationError):
            Loan(
                owner_id=uuid4(),
                type=LoanType.TAKEN,
                person_name="Ravi",
                original_amount=Decimal("500"),
                remaining_amount=Decimal("600"),
            )

    def test_paid_amount(self):
        loan = Loan(
            owner_id=uuid4(),
            type=LoanType.GIVEN,
            person_name="  Asha  ",
            original_amount=Decimal("500"),
            remaining_amount=Decimal("300"),
        )
        assert loan.paid_amount == Decimal("200")
        assert loan.person_name == "Asha"


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.TICK_STARTED,
            description="Tick started",
        )
        assert event.severity == AuditSeverity.INFO
        assert event.owner_id is None

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.LOAN_CLOSED,
            description="Loan closed",
            details={"reason": "fully paid"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "loan_closed"
        assert log_dict["details"]["reason"] == "fully paid"

    def test_builder_transaction_changed(self):
        transaction = make_transaction()
        change = TransactionChange.for_transaction(transaction, ChangeKind.DELETED)
        event = AuditEventBuilder.transaction_changed(change)
        assert event.event_type == AuditEventType.TRANSACTION_DELETED
        assert event.entity_id == transaction.id
        assert event.owner_id == transaction.owner_id

    def test_builder_recurring_failed_is_an_error(self):
        event = AuditEventBuilder.recurring_failed(
            definition_id=uuid4(),
            owner_id=uuid4(),
            error_kind="configuration",
            error_message="missing category",
        )
        assert event.severity == AuditSeverity.ERROR
        assert event.error_code == "configuration"

    def test_builder_tick_completed_warns_on_failures(self):
        event = AuditEventBuilder.tick_completed(
            run_date=date(2024, 1, 3), fired=2, failed=1, correlation_id=uuid4()
        )
        assert event.severity == AuditSeverity.WARNING


class TestErrors:

    def test_kind_discriminates(self):
        assert NotFoundError("x").kind == ErrorKind.NOT_FOUND
        assert ConflictError("x").kind == ErrorKind.CONFLICT

    def test_to_dict(self):
        error = NotFoundError("Loan not found", details={"loan_id": "1"})
        assert error.to_dict() == {
            "kind": "not_found",
            "message": "Loan not found",
            "details": {"loan_id": "1"},
        }


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
