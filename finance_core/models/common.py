"""Shared field types for all models."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated

from pydantic import Field


# Positive money amount (transactions, installments, budget targets)
PositiveAmount = Annotated[Decimal, Field(gt=0, decimal_places=2)]

# Money amount that may be zero (derived balances)
NonNegativeAmount = Annotated[Decimal, Field(ge=0, decimal_places=2)]

ZERO = Decimal("0.00")


def utc_now() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)
