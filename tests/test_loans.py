"""Tests for the loan installment ledger."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from finance_core.errors import ConfigurationError, NotFoundError, ValidationError
from finance_core.loans import balance_from_installments
from finance_core.models.ledger import Direction, TransactionOrigin
from finance_core.models.loan import LoanStatus, LoanType


async def take_loan(app, owner_id, amount="500", type=LoanType.TAKEN, **kwargs):
    return await app.loans.create_loan(
        owner_id=owner_id,
        type=type,
        person_name="Ravi",
        original_amount=Decimal(amount),
        **kwargs,
    )


async def assert_balance_invariant(app, owner_id, loan_id):
    loan = await app.loans.get_loan(owner_id, loan_id)
    installments = await app.loans.list_installments(owner_id, loan_id)
    assert Decimal("0") <= loan.remaining_amount <= loan.original_amount
    assert loan.remaining_amount == balance_from_installments(loan.original_amount, installments)


class TestRecordPayment:

    @pytest.mark.asyncio
    async def test_full_payment_closes_and_reversal_reopens(self, app, owner_id):
        loan = await take_loan(app, owner_id)

        loan, installment = await app.loans.record_payment(
            owner_id, loan.id, Decimal("500"), payment_date=date(2024, 1, 10)
        )
        assert loan.remaining_amount == Decimal("0")
        assert loan.status == LoanStatus.CLOSED

        transactions = await app.ledger.list_transactions(owner_id)
        assert len(transactions) == 1
        payments = await app.ledger.lookup_system_category(owner_id, "Loan Payments")
        assert transactions[0].category_id == payments.id
        assert transactions[0].direction == Direction.EXPENSE
        assert transactions[0].origin == TransactionOrigin.LOAN_INSTALLMENT
        assert installment.ledger_transaction_id == transactions[0].id

        loan = await app.loans.reverse_payment(owner_id, loan.id, installment.id)
        assert loan.remaining_amount == Decimal("500")
        assert loan.status == LoanStatus.ACTIVE
        # The ledger entry is kept unless removal is asked for
        assert len(await app.ledger.list_transactions(owner_id)) == 1

    @pytest.mark.asyncio
    async def test_given_loan_records_income_on_default_channel(self, app, owner_id):
        loan = await take_loan(app, owner_id, type=LoanType.GIVEN)
        await app.loans.record_payment(owner_id, loan.id, Decimal("100"))

        transaction = (await app.ledger.list_transactions(owner_id))[0]
        repayments = await app.ledger.lookup_system_category(owner_id, "Loan Repayments")
        cash = await app.ledger.resolve_payment_channel(owner_id)
        assert transaction.direction == Direction.INCOME
        assert transaction.category_id == repayments.id
        assert transaction.payment_channel_id == cash.id

    @pytest.mark.asyncio
    async def test_overpayment_clamps_to_zero(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        loan, installment = await app.loans.record_payment(owner_id, loan.id, Decimal("650"))
        assert loan.remaining_amount == Decimal("0")
        assert loan.status == LoanStatus.CLOSED

        loan = await app.loans.reverse_payment(owner_id, loan.id, installment.id)
        assert loan.remaining_amount == Decimal("500")
        await assert_balance_invariant(app, owner_id, loan.id)

    @pytest.mark.asyncio
    async def test_rejections(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        with pytest.raises(ValidationError):
            await app.loans.record_payment(owner_id, loan.id, Decimal("0"))
        with pytest.raises(NotFoundError):
            await app.loans.record_payment(uuid4(), loan.id, Decimal("10"))

        await app.loans.record_payment(owner_id, loan.id, Decimal("500"))
        with pytest.raises(ValidationError):
            await app.loans.record_payment(owner_id, loan.id, Decimal("10"))

    @pytest.mark.asyncio
    async def test_missing_system_category_leaves_no_trace(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        category = await app.ledger.lookup_system_category(owner_id, "Loan Payments")
        del app.database.tables["categories"][category.id]

        with pytest.raises(ConfigurationError):
            await app.loans.record_payment(owner_id, loan.id, Decimal("100"))

        stored = await app.loans.get_loan(owner_id, loan.id)
        assert stored.remaining_amount == Decimal("500")
        assert await app.loans.list_installments(owner_id, loan.id) == []

    @pytest.mark.asyncio
    async def test_payment_counts_against_loan_payments_budget(self, app, owner_id):
        payments = await app.ledger.lookup_system_category(owner_id, "Loan Payments")
        budget = await app.budgets.create_budget(
            owner_id, payments.id, Decimal("300"), date(2024, 1, 1), date(2024, 1, 31)
        )
        loan = await take_loan(app, owner_id)
        _, installment = await app.loans.record_payment(
            owner_id, loan.id, Decimal("200"), payment_date=date(2024, 1, 5)
        )
        assert (await app.budgets.get_budget(owner_id, budget.id)).spent_amount == Decimal("200")

        await app.loans.reverse_payment(owner_id, loan.id, installment.id, remove_ledger_entry=True)
        assert await app.ledger.list_transactions(owner_id) == []
        assert (await app.budgets.get_budget(owner_id, budget.id)).spent_amount == Decimal("0")


class TestReversePayment:

    @pytest.mark.asyncio
    async def test_balance_invariant_across_payments(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        _, first = await app.loans.record_payment(owner_id, loan.id, Decimal("120"))
        await assert_balance_invariant(app, owner_id, loan.id)
        await app.loans.record_payment(owner_id, loan.id, Decimal("80"))
        await assert_balance_invariant(app, owner_id, loan.id)

        loan = await app.loans.reverse_payment(owner_id, loan.id, first.id)
        assert loan.remaining_amount == Decimal("420")
        await assert_balance_invariant(app, owner_id, loan.id)

    @pytest.mark.asyncio
    async def test_installment_of_another_loan_is_not_found(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        other = await take_loan(app, owner_id)
        _, installment = await app.loans.record_payment(owner_id, other.id, Decimal("10"))

        with pytest.raises(NotFoundError):
            await app.loans.reverse_payment(owner_id, loan.id, installment.id)


class TestLoanTerms:

    @pytest.mark.asyncio
    async def test_original_amount_edit_keeps_paid_amount(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        await app.loans.record_payment(owner_id, loan.id, Decimal("200"))

        loan = await app.loans.update_loan(owner_id, loan.id, original_amount=Decimal("300"))
        assert loan.remaining_amount == Decimal("100")
        assert loan.status == LoanStatus.ACTIVE
        await assert_balance_invariant(app, owner_id, loan.id)

    @pytest.mark.asyncio
    async def test_original_amount_edit_after_overpayment(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        await app.loans.record_payment(owner_id, loan.id, Decimal("600"))

        loan = await app.loans.update_loan(owner_id, loan.id, original_amount=Decimal("1000"))
        assert loan.remaining_amount == Decimal("400")
        assert loan.status == LoanStatus.ACTIVE
        await assert_balance_invariant(app, owner_id, loan.id)

        loan, installment = await app.loans.record_payment(owner_id, loan.id, Decimal("100"))
        assert loan.remaining_amount == Decimal("300")

        loan = await app.loans.reverse_payment(owner_id, loan.id, installment.id)
        assert loan.remaining_amount == Decimal("400")
        await assert_balance_invariant(app, owner_id, loan.id)

    @pytest.mark.asyncio
    async def test_original_amount_below_paid_closes(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        await app.loans.record_payment(owner_id, loan.id, Decimal("200"))

        loan = await app.loans.update_loan(owner_id, loan.id, original_amount=Decimal("150"))
        assert loan.remaining_amount == Decimal("0")
        assert loan.status == LoanStatus.CLOSED

    @pytest.mark.asyncio
    async def test_manual_close_needs_zero_balance(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        with pytest.raises(ValidationError):
            await app.loans.close_loan(owner_id, loan.id)
        with pytest.raises(ValidationError):
            await app.loans.update_loan(owner_id, loan.id, status=LoanStatus.CLOSED)

        await app.loans.record_payment(owner_id, loan.id, Decimal("499.99"))
        loan = await app.loans.get_loan(owner_id, loan.id)
        assert loan.remaining_amount == Decimal("0.01")
        with pytest.raises(ValidationError):
            await app.loans.close_loan(owner_id, loan.id)

    @pytest.mark.asyncio
    async def test_manual_close_of_open_loan_at_zero_balance(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        await app.loans.record_payment(owner_id, loan.id, Decimal("500"))

        # A paid-off loan left open, as an imported record could be
        stored = app.database.tables["loans"][loan.id]
        stored.status = LoanStatus.ACTIVE
        assert (await app.loans.get_loan(owner_id, loan.id)).status == LoanStatus.ACTIVE

        loan = await app.loans.close_loan(owner_id, loan.id)
        assert loan.status == LoanStatus.CLOSED
        assert loan.remaining_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_close_loan_accepts_an_already_closed_loan(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        loan, _ = await app.loans.record_payment(owner_id, loan.id, Decimal("500"))
        assert loan.status == LoanStatus.CLOSED

        loan = await app.loans.close_loan(owner_id, loan.id)
        assert loan.status == LoanStatus.CLOSED

    @pytest.mark.asyncio
    async def test_other_fields_update(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        loan = await app.loans.update_loan(
            owner_id, loan.id, person_name="Asha", due_date=date(2024, 6, 30), notes="family"
        )
        assert loan.person_name == "Asha"
        assert loan.due_date == date(2024, 6, 30)
        assert loan.remaining_amount == Decimal("500")


class TestLoanLifecycle:

    @pytest.mark.asyncio
    async def test_create_validation(self, app, owner_id):
        with pytest.raises(ValidationError):
            await take_loan(app, owner_id, amount="0")
        with pytest.raises(ValidationError):
            await app.loans.create_loan(owner_id, LoanType.TAKEN, "   ", Decimal("10"))

    @pytest.mark.asyncio
    async def test_delete_only_without_installments(self, app, owner_id):
        loan = await take_loan(app, owner_id)
        _, installment = await app.loans.record_payment(owner_id, loan.id, Decimal("10"))
        with pytest.raises(ValidationError):
            await app.loans.delete_loan(owner_id, loan.id)

        await app.loans.reverse_payment(owner_id, loan.id, installment.id)
        await app.loans.delete_loan(owner_id, loan.id)
        with pytest.raises(NotFoundError):
            await app.loans.get_loan(owner_id, loan.id)

    @pytest.mark.asyncio
    async def test_list_filters(self, app, owner_id):
        open_loan = await take_loan(app, owner_id, start_date=date(2024, 1, 5))
        closed = await take_loan(app, owner_id, amount="50", start_date=date(2023, 6, 1))
        await app.loans.record_payment(owner_id, closed.id, Decimal("50"))

        active = await app.loans.list_loans(owner_id, include_closed=False)
        assert [loan.id for loan in active] == [open_loan.id]

        recent = await app.loans.list_loans(owner_id, start_from=date(2024, 1, 1))
        assert [loan.id for loan in recent] == [open_loan.id]

        with pytest.raises(ValidationError):
            await app.loans.list_loans(owner_id, start_from=date(2024, 2, 1), start_to=date(2024, 1, 1))

    @pytest.mark.asyncio
    async def test_summary(self, app, owner_id):
        taken = await take_loan(app, owner_id, amount="500")
        given = await take_loan(app, owner_id, amount="200", type=LoanType.GIVEN)
        await app.loans.record_payment(owner_id, taken.id, Decimal("100"))
        await app.loans.record_payment(owner_id, given.id, Decimal("200"))

        summary = await app.loans.loan_summary(owner_id)
        assert summary.total_taken == Decimal("500")
        assert summary.total_given == Decimal("200")
        assert summary.total_paid_on_taken == Decimal("100")
        assert summary.total_received_on_given == Decimal("200")
        assert summary.total_outstanding == Decimal("400")
        assert summary.active_count == 1
        assert summary.closed_count == 1
