"""Audit logging package."""

from finance_core.audit.logger import (
    AuditLogger,
    correlation_scope,
    create_correlation_id,
    current_correlation_id,
)

__all__ = [
    "AuditLogger",
    "correlation_scope",
    "create_correlation_id",
    "current_correlation_id",
]
