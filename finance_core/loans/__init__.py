"""Loan installment ledger package."""

from finance_core.loans.ledger import LoanLedger, balance_from_installments

__all__ = ["LoanLedger", "balance_from_installments"]
