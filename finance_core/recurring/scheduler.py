"""
Recurring Transaction Scheduler

DESIGN DECISION: next_run_date is the only scheduling state. The daily
tick picks up every auto-pay definition whose next_run_date <= today and,
for each one:
1. Fires ONCE, dated on the scheduled run date (a missed run is caught
   up late, never replayed period by period)
2. Advances next_run_date by exactly one period from its prior value

A definition that missed several periods therefore catches up one
period per tick.

Each definition is its own unit of work: a failure rolls back that
definition only and is recorded in the TickReport.

Double-firing is prevented twice over:
- Only one tick runs at a time per scheduler; an overlapping call
  returns a skipped report
- Each firing claims the definition with its version; if it changed
  since it was selected, the claim fails with ConflictError
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from finance_core.audit import AuditLogger, correlation_scope
from finance_core.config import SchedulerSettings, SystemRecordSettings, get_settings
from finance_core.errors import ConflictError, FinanceError, NotFoundError, ValidationError
from finance_core.ledger import LedgerService
from finance_core.models.audit import AuditEventType
from finance_core.models.common import utc_now
from finance_core.models.ledger import Direction, LedgerTransaction, TransactionOrigin
from finance_core.models.recurring import (
    FireOutcome,
    Frequency,
    RecurringDefinition,
    TickReport,
)
from finance_core.services.storage import (
    RecurringStorageInterface,
    StorageError,
    UnitOfWorkInterface,
)


logger = structlog.get_logger(__name__)


def _error_kind(error: BaseException) -> str:
    if isinstance(error, FinanceError):
        return error.kind.value
    if isinstance(error, StorageError):
        return "storage"
    return "unexpected"


class RecurringScheduler:
    """Recurring definition CRUD, manual triggers and the daily tick."""

    def __init__(
        self,
        storage: RecurringStorageInterface,
        ledger: LedgerService,
        unit_of_work: UnitOfWorkInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SchedulerSettings] = None,
        system_records: Optional[SystemRecordSettings] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self._ledger = ledger
        self._uow = unit_of_work
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().scheduler
        self._system_records = system_records or get_settings().system_records
        self._clock = clock
        self._tick_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Definitions
    # -------------------------------------------------------------------------

    async def create_definition(
        self,
        owner_id: UUID,
        title: str,
        amount: Decimal,
        direction: Direction,
        frequency: Frequency,
        next_run_date: date,
        auto_pay: bool = False,
    ) -> RecurringDefinition:
        """
        Create a definition under the owner's system recurring category.

        A next_run_date in the past is moved to tomorrow.
        """
        today = self._clock()
        if next_run_date < today:
            next_run_date = today + timedelta(days=1)

        async with self._uow.transaction():
            category = await self._ledger.lookup_system_category(
                owner_id, self._system_records.recurring_category
            )
            try:
                definition = RecurringDefinition(
                    owner_id=owner_id,
                    category_id=category.id,
                    title=title,
                    amount=amount,
                    direction=direction,
                    frequency=frequency,
                    next_run_date=next_run_date,
                    auto_pay=auto_pay,
                )
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid recurring definition: {e}")

            saved = await self._storage.save_definition(definition)
            logger.info(
                "recurring_definition_created",
                definition_id=str(saved.id),
                frequency=saved.frequency.value,
                next_run_date=saved.next_run_date.isoformat(),
            )
            return saved

    async def update_definition(
        self,
        owner_id: UUID,
        definition_id: UUID,
        title: Optional[str] = None,
        amount: Optional[Decimal] = None,
        direction: Optional[Direction] = None,
        frequency: Optional[Frequency] = None,
        next_run_date: Optional[date] = None,
        auto_pay: Optional[bool] = None,
    ) -> RecurringDefinition:
        """
        Edit a definition. Only the fields passed are changed.

        A next_run_date in the past is moved to today, so the next tick
        fires it.
        """
        async with self._uow.transaction():
            definition = await self.get_definition(owner_id, definition_id)
            changes: dict = {}

            if title is not None:
                changes["title"] = title
            if amount is not None:
                changes["amount"] = amount
            if direction is not None:
                changes["direction"] = direction
            if frequency is not None:
                changes["frequency"] = frequency
            if next_run_date is not None:
                changes["next_run_date"] = max(next_run_date, self._clock())
            if auto_pay is not None:
                changes["auto_pay"] = auto_pay

            try:
                updated = RecurringDefinition.model_validate({
                    **definition.model_dump(),
                    **changes,
                    "updated_at": utc_now(),
                })
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid recurring definition: {e}")

            return await self._storage.save_definition(updated)

    async def delete_definition(self, owner_id: UUID, definition_id: UUID) -> None:
        """Delete a definition. Transactions it already produced are kept."""
        async with self._uow.transaction():
            await self.get_definition(owner_id, definition_id)
            await self._storage.delete_definition(owner_id, definition_id)

    async def get_definition(self, owner_id: UUID, definition_id: UUID) -> RecurringDefinition:
        definition = await self._storage.get_definition(owner_id, definition_id)
        if definition is None:
            raise NotFoundError(
                "Recurring definition not found or access denied.",
                details={"definition_id": str(definition_id)},
            )
        return definition

    async def list_definitions(self, owner_id: UUID) -> list[RecurringDefinition]:
        return await self._storage.list_definitions(owner_id)

    # -------------------------------------------------------------------------
    # Manual triggers
    # -------------------------------------------------------------------------

    async def pause(self, owner_id: UUID, definition_id: UUID) -> RecurringDefinition:
        """Stop automatic firing. next_run_date is left untouched."""
        async with self._uow.transaction():
            definition = await self.get_definition(owner_id, definition_id)
            definition.auto_pay = False
            definition.updated_at = utc_now()
            saved = await self._storage.save_definition(definition)

            if self._audit_logger:
                await self._audit_logger.log_entity_event(
                    event_type=AuditEventType.RECURRING_PAUSED,
                    entity_type="recurring",
                    entity_id=saved.id,
                    owner_id=owner_id,
                    description=f"Recurring '{saved.title}' paused",
                )
            return saved

    async def resume(self, owner_id: UUID, definition_id: UUID) -> RecurringDefinition:
        """Fire once today, re-enable auto-pay and advance one period."""
        saved = await self._fire_manually(owner_id, definition_id)
        if self._audit_logger:
            await self._audit_logger.log_entity_event(
                event_type=AuditEventType.RECURRING_RESUMED,
                entity_type="recurring",
                entity_id=saved.id,
                owner_id=owner_id,
                description=f"Recurring '{saved.title}' resumed",
                details={"next_run_date": saved.next_run_date.isoformat()},
            )
        return saved

    async def run_now(self, owner_id: UUID, definition_id: UUID) -> RecurringDefinition:
        """Fire once today regardless of auto-pay, then behave like resume."""
        return await self._fire_manually(owner_id, definition_id)

    async def _fire_manually(self, owner_id: UUID, definition_id: UUID) -> RecurringDefinition:
        today = self._clock()
        async with self._uow.transaction():
            definition = await self.get_definition(owner_id, definition_id)
            transaction = await self._fire(definition, occurred_on=today)

            definition.auto_pay = True
            definition.next_run_date = definition.following_run_date()
            definition.last_fired_on = today
            definition.updated_at = utc_now()
            saved = await self._storage.save_definition(definition)

        if self._audit_logger:
            await self._audit_logger.log_recurring_fired(
                definition_id=saved.id,
                owner_id=owner_id,
                transaction_id=transaction.id,
                scheduled_for=today,
                next_run_date=saved.next_run_date,
                manual=True,
            )
        return saved

    # -------------------------------------------------------------------------
    # Daily tick
    # -------------------------------------------------------------------------

    async def process_due_definitions(self, today: Optional[date] = None) -> TickReport:
        """
        Fire every due auto-pay definition once and advance it.

        Never raises for a single definition's failure; see the report.
        """
        today = today or self._clock()

        if self._tick_lock.locked():
            logger.warning("tick_skipped", run_date=today.isoformat())
            if self._audit_logger:
                await self._audit_logger.log_tick_skipped(today)
            return TickReport(run_date=today, skipped=True, finished_at=utc_now())

        async with self._tick_lock:
            with correlation_scope() as correlation_id:
                report = TickReport(run_date=today, correlation_id=correlation_id)
                due = await self._storage.find_due_definitions(today)

                logger.info("tick_started", run_date=today.isoformat(), due=len(due))
                if self._audit_logger:
                    await self._audit_logger.log_tick_started(today, len(due), correlation_id)

                for definition in due:
                    report.outcomes.append(await self._process_one(definition, today))

                report.finished_at = utc_now()
                logger.info(
                    "tick_completed",
                    run_date=today.isoformat(),
                    fired=report.fired_count,
                    failed=report.failed_count,
                )
                if self._audit_logger:
                    await self._audit_logger.log_tick_completed(
                        run_date=today,
                        fired=report.fired_count,
                        failed=report.failed_count,
                        correlation_id=correlation_id,
                    )
                return report

    async def _process_one(self, definition: RecurringDefinition, today: date) -> FireOutcome:
        scheduled_for = definition.next_run_date
        caught_up = scheduled_for < today

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._settings.fire_max_attempts),
                wait=wait_exponential(
                    multiplier=self._settings.fire_retry_min_seconds,
                    min=self._settings.fire_retry_min_seconds,
                    max=self._settings.fire_retry_max_seconds,
                ),
                retry=retry_if_exception_type(StorageError),
                reraise=True,
            ):
                with attempt:
                    transaction, saved = await self._claim_and_fire(
                        definition.id, definition.version, today
                    )
        except Exception as e:
            # One definition's failure must not stop the tick
            logger.error(
                "recurring_fire_failed",
                definition_id=str(definition.id),
                owner_id=str(definition.owner_id),
                error_kind=_error_kind(e),
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_recurring_failed(
                    definition_id=definition.id,
                    owner_id=definition.owner_id,
                    error_kind=_error_kind(e),
                    error_message=str(e),
                )
            return FireOutcome(
                definition_id=definition.id,
                owner_id=definition.owner_id,
                success=False,
                scheduled_for=scheduled_for,
                caught_up=caught_up,
                error_kind=_error_kind(e),
                error_message=str(e),
            )

        if self._audit_logger:
            await self._audit_logger.log_recurring_fired(
                definition_id=saved.id,
                owner_id=saved.owner_id,
                transaction_id=transaction.id,
                scheduled_for=scheduled_for,
                next_run_date=saved.next_run_date,
            )
        return FireOutcome(
            definition_id=saved.id,
            owner_id=saved.owner_id,
            success=True,
            scheduled_for=scheduled_for,
            caught_up=caught_up,
            transaction_id=transaction.id,
            next_run_date=saved.next_run_date,
        )

    async def _claim_and_fire(
        self,
        definition_id: UUID,
        expected_version: int,
        today: date,
    ) -> tuple[LedgerTransaction, RecurringDefinition]:
        """Fire and advance one definition as a single unit of work."""
        async with self._uow.transaction():
            current = await self._storage.get_definition_by_id(definition_id)
            if current is None or current.version != expected_version or not current.is_due(today):
                raise ConflictError(
                    "Recurring definition changed since it was selected.",
                    details={
                        "definition_id": str(definition_id),
                        "expected_version": expected_version,
                    },
                )

            transaction = await self._fire(current, occurred_on=current.next_run_date)

            current.next_run_date = current.following_run_date()
            current.last_fired_on = transaction.occurred_on
            current.updated_at = utc_now()
            saved = await self._storage.save_definition(current, expected_version=expected_version)
            return transaction, saved

    async def _fire(self, definition: RecurringDefinition, occurred_on: date) -> LedgerTransaction:
        """Materialize one ledger transaction through the normal write path."""
        names = self._system_records
        category = await self._ledger.lookup_system_category(
            definition.owner_id, names.recurring_category
        )
        channel = await self._ledger.lookup_system_payment_channel(
            definition.owner_id, names.auto_pay_channel
        )
        return await self._ledger.create_transaction(
            owner_id=definition.owner_id,
            category_id=category.id,
            amount=definition.amount,
            direction=definition.direction,
            occurred_on=occurred_on,
            payment_channel_id=channel.id,
            description=f"Recurring: {definition.title}",
            origin=TransactionOrigin.RECURRING,
        )
