"""Transaction ledger package."""

from finance_core.ledger.service import LedgerService

__all__ = ["LedgerService"]
