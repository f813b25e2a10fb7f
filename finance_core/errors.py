"""
Error Taxonomy

DESIGN DECISION: Every failure the core raises carries an ErrorKind tag.
Callers branch on the kind, not on message text:

- VALIDATION: bad input (non-positive amount, closed loan, premature close)
- NOT_FOUND: referenced record is missing or belongs to another owner
- CONFIGURATION: account setup is inconsistent (missing system category
  or payment channel); fatal for the unit of work
- CONFLICT: a record changed underneath us (optimistic claim lost)

None of these leave partial state behind: the unit of work that raised
them is rolled back.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Discriminator for FinanceError."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFIGURATION = "configuration"
    CONFLICT = "conflict"


class FinanceError(Exception):
    """Base exception for all core operations."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serializable form for logs and API error bodies."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(FinanceError):
    """Rejected input. No state was changed."""
    kind = ErrorKind.VALIDATION


class NotFoundError(FinanceError):
    """Record missing or not owned by the caller."""
    kind = ErrorKind.NOT_FOUND


class ConfigurationError(FinanceError):
    """Inconsistent account setup, e.g. a missing system category."""
    kind = ErrorKind.CONFIGURATION


class ConflictError(FinanceError):
    """Concurrent modification detected."""
    kind = ErrorKind.CONFLICT
