"""
Audit Models for Finance Core

Every change to derived state is logged for audit purposes.
This provides:
1. Traceability of automated writes (recurring firings, loan side effects)
2. Debugging information when a tick or recalculation fails
3. Ability to reconstruct why a balance has its current value

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_core.models.common import utc_now
from finance_core.models.ledger import TransactionChange


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each engine has its own group of event types.
    """
    # Ledger writes
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Budget engine
    BUDGET_CREATED = "budget_created"
    BUDGET_RECALCULATED = "budget_recalculated"
    BUDGET_DELETED = "budget_deleted"

    # Recurring scheduler
    TICK_STARTED = "tick_started"
    TICK_COMPLETED = "tick_completed"
    TICK_SKIPPED = "tick_skipped"
    RECURRING_FIRED = "recurring_fired"
    RECURRING_FAILED = "recurring_failed"
    RECURRING_PAUSED = "recurring_paused"
    RECURRING_RESUMED = "recurring_resumed"

    # Loan ledger
    LOAN_CREATED = "loan_created"
    LOAN_PAYMENT_RECORDED = "loan_payment_recorded"
    LOAN_PAYMENT_REVERSED = "loan_payment_reversed"
    LOAN_CLOSED = "loan_closed"
    LOAN_REOPENED = "loan_reopened"
    LOAN_DELETED = "loan_deleted"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - which record and whose
    owner_id: Optional[UUID] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'budget', 'loan', 'recurring')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - all events of one unit of work or one tick
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action (vs. the scheduler)?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": str(self.owner_id) if self.owner_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


_CHANGE_EVENT_TYPES = {
    "created": AuditEventType.TRANSACTION_CREATED,
    "updated": AuditEventType.TRANSACTION_UPDATED,
    "deleted": AuditEventType.TRANSACTION_DELETED,
}


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_changed(change)
        event = AuditEventBuilder.recurring_fired(definition_id, ...)
    """

    @staticmethod
    def transaction_changed(
        change: TransactionChange,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=_CHANGE_EVENT_TYPES[change.change_kind.value],
            owner_id=change.owner_id,
            entity_type="transaction",
            entity_id=change.transaction_id,
            correlation_id=correlation_id,
            description=f"Ledger {change.direction.value} {change.change_kind.value}: {change.amount}",
            details={
                "category_id": str(change.category_id),
                "occurred_on": change.occurred_on.isoformat(),
                "amount": str(change.amount),
            },
        )

    @staticmethod
    def budget_recalculated(
        budget_id: UUID,
        owner_id: UUID,
        spent: Decimal,
        remaining: Decimal,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_RECALCULATED,
            owner_id=owner_id,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget recalculated: spent {spent}, remaining {remaining} ({status})",
            details={
                "spent_amount": str(spent),
                "remaining_amount": str(remaining),
                "status": status,
            },
        )

    @staticmethod
    def recurring_fired(
        definition_id: UUID,
        owner_id: UUID,
        transaction_id: UUID,
        scheduled_for: date,
        next_run_date: date,
        manual: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_FIRED,
            owner_id=owner_id,
            entity_type="recurring",
            entity_id=definition_id,
            correlation_id=correlation_id,
            description=f"Recurring definition fired for {scheduled_for.isoformat()}",
            details={
                "transaction_id": str(transaction_id),
                "scheduled_for": scheduled_for.isoformat(),
                "next_run_date": next_run_date.isoformat(),
            },
            is_user_action=manual,
        )

    @staticmethod
    def recurring_failed(
        definition_id: UUID,
        owner_id: UUID,
        error_kind: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type="recurring",
            entity_id=definition_id,
            correlation_id=correlation_id,
            description="Recurring definition could not be fired",
            error_code=error_kind,
            error_message=error_message,
        )

    @staticmethod
    def tick_started(
        run_date: date,
        due: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TICK_STARTED,
            entity_type="tick",
            correlation_id=correlation_id,
            description=f"Daily tick for {run_date.isoformat()}: {due} definitions due",
            details={"run_date": run_date.isoformat(), "due": due},
        )

    @staticmethod
    def tick_skipped(run_date: date) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TICK_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="tick",
            description=f"Daily tick for {run_date.isoformat()} skipped: another tick is running",
            details={"run_date": run_date.isoformat()},
        )

    @staticmethod
    def tick_completed(
        run_date: date,
        fired: int,
        failed: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TICK_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="tick",
            correlation_id=correlation_id,
            description=f"Daily tick for {run_date.isoformat()}: {fired} fired, {failed} failed",
            details={
                "run_date": run_date.isoformat(),
                "fired": fired,
                "failed": failed,
            },
        )

    @staticmethod
    def loan_payment_recorded(
        loan_id: UUID,
        owner_id: UUID,
        installment_id: UUID,
        amount: Decimal,
        remaining: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_PAYMENT_RECORDED,
            owner_id=owner_id,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan payment of {amount} recorded, {remaining} remaining",
            details={
                "installment_id": str(installment_id),
                "amount_paid": str(amount),
                "remaining_amount": str(remaining),
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_payment_reversed(
        loan_id: UUID,
        owner_id: UUID,
        installment_id: UUID,
        amount: Decimal,
        remaining: Decimal,
        ledger_entry_removed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_PAYMENT_REVERSED,
            owner_id=owner_id,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan payment of {amount} reversed, {remaining} remaining",
            details={
                "installment_id": str(installment_id),
                "amount_paid": str(amount),
                "remaining_amount": str(remaining),
                "ledger_entry_removed": ledger_entry_removed,
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_status_changed(
        loan_id: UUID,
        owner_id: UUID,
        closed: bool,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_CLOSED if closed else AuditEventType.LOAN_REOPENED,
            owner_id=owner_id,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan {'closed' if closed else 'reopened'}: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def entity_event(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        owner_id: UUID,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        """Plain lifecycle event (created / deleted / paused...)."""
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
