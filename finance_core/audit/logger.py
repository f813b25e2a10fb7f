"""
Audit Logger

DESIGN DECISION: Every change to derived state is logged.
This provides:
1. Complete traceability of automated writes
2. Debugging capability when a tick or recalculation fails
3. Users can see why a balance has its current value

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events; a correlation scope
  set around a unit of work or a tick is picked up by every event
  logged inside it
"""

from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date
from decimal import Decimal
from typing import Iterator, Optional
from uuid import UUID, uuid4

import structlog

from finance_core.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from finance_core.models.ledger import TransactionChange
from finance_core.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


_current_correlation_id: ContextVar[Optional[UUID]] = ContextVar(
    "audit_correlation_id", default=None
)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new unit of work or tick.
    """
    return uuid4()


def current_correlation_id() -> Optional[UUID]:
    return _current_correlation_id.get()


@contextmanager
def correlation_scope(correlation_id: Optional[UUID] = None) -> Iterator[UUID]:
    """
    Tag every audit event logged inside the block with one correlation id.

    An already-open scope is reused when no id is passed.
    """
    existing = _current_correlation_id.get()
    scope_id = correlation_id or existing or create_correlation_id()
    token = _current_correlation_id.set(scope_id)
    try:
        yield scope_id
    finally:
        _current_correlation_id.reset(token)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finance_core.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        if event.correlation_id is None:
            event.correlation_id = current_correlation_id()

        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def trail(self, correlation_id: UUID) -> list[AuditEvent]:
        """Every persisted event of one unit of work or tick, oldest first."""
        if self._storage is None:
            return []
        return await self._storage.get_events_by_correlation_id(correlation_id)

    async def log_transaction_changed(self, change: TransactionChange) -> None:
        """Log a ledger write."""
        await self.log(AuditEventBuilder.transaction_changed(change))

    async def log_budget_recalculated(
        self,
        budget_id: UUID,
        owner_id: UUID,
        spent: Decimal,
        remaining: Decimal,
        status: str,
    ) -> None:
        event = AuditEventBuilder.budget_recalculated(
            budget_id=budget_id,
            owner_id=owner_id,
            spent=spent,
            remaining=remaining,
            status=status,
        )
        await self.log(event)

    async def log_recurring_fired(
        self,
        definition_id: UUID,
        owner_id: UUID,
        transaction_id: UUID,
        scheduled_for: date,
        next_run_date: date,
        manual: bool = False,
    ) -> None:
        event = AuditEventBuilder.recurring_fired(
            definition_id=definition_id,
            owner_id=owner_id,
            transaction_id=transaction_id,
            scheduled_for=scheduled_for,
            next_run_date=next_run_date,
            manual=manual,
        )
        await self.log(event)

    async def log_recurring_failed(
        self,
        definition_id: UUID,
        owner_id: UUID,
        error_kind: str,
        error_message: str,
    ) -> None:
        event = AuditEventBuilder.recurring_failed(
            definition_id=definition_id,
            owner_id=owner_id,
            error_kind=error_kind,
            error_message=error_message,
        )
        await self.log(event)

    async def log_tick_started(self, run_date: date, due: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.tick_started(run_date, due, correlation_id))

    async def log_tick_skipped(self, run_date: date) -> None:
        await self.log(AuditEventBuilder.tick_skipped(run_date))

    async def log_tick_completed(
        self,
        run_date: date,
        fired: int,
        failed: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.tick_completed(
            run_date=run_date,
            fired=fired,
            failed=failed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_payment_recorded(
        self,
        loan_id: UUID,
        owner_id: UUID,
        installment_id: UUID,
        amount: Decimal,
        remaining: Decimal,
    ) -> None:
        event = AuditEventBuilder.loan_payment_recorded(
            loan_id=loan_id,
            owner_id=owner_id,
            installment_id=installment_id,
            amount=amount,
            remaining=remaining,
        )
        await self.log(event)

    async def log_loan_payment_reversed(
        self,
        loan_id: UUID,
        owner_id: UUID,
        installment_id: UUID,
        amount: Decimal,
        remaining: Decimal,
        ledger_entry_removed: bool,
    ) -> None:
        event = AuditEventBuilder.loan_payment_reversed(
            loan_id=loan_id,
            owner_id=owner_id,
            installment_id=installment_id,
            amount=amount,
            remaining=remaining,
            ledger_entry_removed=ledger_entry_removed,
        )
        await self.log(event)

    async def log_loan_status_changed(
        self,
        loan_id: UUID,
        owner_id: UUID,
        closed: bool,
        reason: str,
    ) -> None:
        event = AuditEventBuilder.loan_status_changed(
            loan_id=loan_id,
            owner_id=owner_id,
            closed=closed,
            reason=reason,
        )
        await self.log(event)

    async def log_entity_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        owner_id: UUID,
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a plain lifecycle event (created, deleted, paused...)."""
        event = AuditEventBuilder.entity_event(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=owner_id,
            description=description,
            details=details,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)
