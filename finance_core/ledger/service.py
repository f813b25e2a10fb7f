"""
Transaction Ledger

The single write path for expense and income entries. Every create,
update and delete:
1. Validates input against the owner's categories and payment channels
2. Writes the transaction
3. Publishes a TransactionChange through the notifier

all inside one unit of work, so the write and everything derived from
it (budgets) commit together.

The automated subsystems (recurring scheduler, loan ledger) write
through this same path; they never touch ledger storage directly.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from finance_core.audit import AuditLogger
from finance_core.config import SystemRecordSettings, get_settings
from finance_core.errors import ConfigurationError, NotFoundError, ValidationError
from finance_core.events import ChangeNotifier
from finance_core.models.common import utc_now
from finance_core.models.ledger import (
    Category,
    ChangeKind,
    Direction,
    LedgerTransaction,
    PaymentChannel,
    TransactionChange,
    TransactionOrigin,
)
from finance_core.services.storage import LedgerStorageInterface, UnitOfWorkInterface


class LedgerService:
    """
    Owner-scoped ledger operations.

    A category or payment channel owned by someone else is reported as
    not found, never as forbidden.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        unit_of_work: UnitOfWorkInterface,
        notifier: ChangeNotifier,
        audit_logger: Optional[AuditLogger] = None,
        system_records: Optional[SystemRecordSettings] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self._uow = unit_of_work
        self._notifier = notifier
        self._audit_logger = audit_logger
        self._system_records = system_records or get_settings().system_records
        self._clock = clock

    # -------------------------------------------------------------------------
    # Reference records
    # -------------------------------------------------------------------------

    async def create_category(
        self,
        owner_id: UUID,
        name: str,
        type: Direction = Direction.EXPENSE,
        is_budgetable: bool = True,
        is_system_generated: bool = False,
    ) -> Category:
        """Create a category for the owner."""
        try:
            category = Category(
                owner_id=owner_id,
                name=name,
                type=type,
                is_budgetable=is_budgetable,
                is_system_generated=is_system_generated,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid category: {e}")

        async with self._uow.transaction():
            existing = await self._storage.find_category_by_name(owner_id, category.name)
            if existing is not None:
                raise ValidationError(
                    f"Category '{category.name}' already exists.",
                    details={"category_id": str(existing.id)},
                )
            return await self._storage.save_category(category)

    async def create_payment_channel(
        self,
        owner_id: UUID,
        name: str,
        is_system_generated: bool = False,
    ) -> PaymentChannel:
        """Create a payment channel for the owner."""
        try:
            channel = PaymentChannel(
                owner_id=owner_id,
                name=name,
                is_system_generated=is_system_generated,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid payment channel: {e}")

        async with self._uow.transaction():
            existing = await self._storage.find_payment_channel_by_name(owner_id, channel.name)
            if existing is not None:
                raise ValidationError(
                    f"Payment channel '{channel.name}' already exists.",
                    details={"payment_channel_id": str(existing.id)},
                )
            return await self._storage.save_payment_channel(channel)

    async def set_category_active(self, owner_id: UUID, category_id: UUID, active: bool) -> Category:
        """
        Soft-delete or restore a user category.

        Existing transactions keep pointing at it; new ones are refused
        while it is inactive.
        """
        async with self._uow.transaction():
            category = await self.get_category(owner_id, category_id)
            if category.is_system_generated:
                raise ValidationError("System-generated categories cannot be deactivated.")
            category.is_active = active
            return await self._storage.save_category(category)

    async def provision_system_records(self, owner_id: UUID) -> None:
        """
        Create the fixed per-owner records the automated subsystems use.

        Safe to call repeatedly: records that already exist are kept.
        """
        names = self._system_records
        categories = [
            (names.recurring_category, Direction.EXPENSE, True),
            (names.loan_payments_category, Direction.EXPENSE, True),
            (names.loan_repayments_category, Direction.INCOME, False),
        ]

        async with self._uow.transaction():
            for name, direction, budgetable in categories:
                if await self._storage.find_category_by_name(owner_id, name, system_generated=True):
                    continue
                await self._storage.save_category(Category(
                    owner_id=owner_id,
                    name=name,
                    type=direction,
                    is_budgetable=budgetable,
                    is_system_generated=True,
                ))

            if not await self._storage.find_payment_channel_by_name(
                owner_id, names.auto_pay_channel, system_generated=True
            ):
                await self._storage.save_payment_channel(PaymentChannel(
                    owner_id=owner_id,
                    name=names.auto_pay_channel,
                    is_system_generated=True,
                ))

            # The default channel is an ordinary, user-visible record
            if not await self._storage.find_payment_channel_by_name(owner_id, names.default_channel):
                await self._storage.save_payment_channel(PaymentChannel(
                    owner_id=owner_id,
                    name=names.default_channel,
                ))

    async def get_category(self, owner_id: UUID, category_id: UUID) -> Category:
        category = await self._storage.get_category(owner_id, category_id)
        if category is None:
            raise NotFoundError(
                "Category not found or access denied.",
                details={"category_id": str(category_id)},
            )
        return category

    async def lookup_system_category(self, owner_id: UUID, name: str) -> Category:
        """
        Find one of the owner's system-generated categories.

        Raises:
            ConfigurationError: The account was never provisioned with it
        """
        category = await self._storage.find_category_by_name(owner_id, name, system_generated=True)
        if category is None:
            raise ConfigurationError(
                f"System-generated '{name}' category not found for owner.",
                details={"owner_id": str(owner_id), "category": name},
            )
        return category

    async def lookup_system_payment_channel(self, owner_id: UUID, name: str) -> PaymentChannel:
        """
        Find one of the owner's system-generated payment channels.

        Raises:
            ConfigurationError: The account was never provisioned with it
        """
        channel = await self._storage.find_payment_channel_by_name(
            owner_id, name, system_generated=True
        )
        if channel is None:
            raise ConfigurationError(
                f"System-generated '{name}' payment channel not found for owner.",
                details={"owner_id": str(owner_id), "payment_channel": name},
            )
        return channel

    async def resolve_payment_channel(
        self,
        owner_id: UUID,
        channel_id: Optional[UUID] = None,
    ) -> PaymentChannel:
        """
        The given channel, or the owner's default channel when none is given.

        Raises:
            NotFoundError: Given channel missing or not owned
            ValidationError: Given channel is inactive
            ConfigurationError: No default channel exists
        """
        if channel_id is None:
            name = self._system_records.default_channel
            channel = await self._storage.find_payment_channel_by_name(owner_id, name)
            if channel is None:
                raise ConfigurationError(
                    f"Default '{name}' payment channel not found for owner.",
                    details={"owner_id": str(owner_id)},
                )
            return channel

        channel = await self._storage.get_payment_channel(owner_id, channel_id)
        if channel is None:
            raise NotFoundError(
                "Payment channel not found or access denied.",
                details={"payment_channel_id": str(channel_id)},
            )
        if not channel.is_active:
            raise ValidationError("Payment channel is inactive.")
        return channel

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def _checked_category(
        self,
        owner_id: UUID,
        category_id: UUID,
        direction: Direction,
    ) -> Category:
        category = await self.get_category(owner_id, category_id)
        if not category.is_active:
            raise ValidationError("Cannot record transactions against an inactive category.")
        # System categories may carry either direction (recurring income and expense)
        if not category.is_system_generated and category.type != direction:
            raise ValidationError(
                f"Category '{category.name}' only accepts {category.type.value} transactions."
            )
        return category

    async def create_transaction(
        self,
        owner_id: UUID,
        category_id: UUID,
        amount: Decimal,
        direction: Direction,
        occurred_on: Optional[date] = None,
        payment_channel_id: Optional[UUID] = None,
        description: Optional[str] = None,
        origin: Optional[TransactionOrigin] = None,
    ) -> LedgerTransaction:
        """
        Record an expense or income and publish CREATED.

        occurred_on defaults to today; payment_channel_id defaults to the
        owner's default channel.
        """
        if amount is None or amount <= 0:
            raise ValidationError("Transaction amount must be positive.")

        async with self._uow.transaction():
            await self._checked_category(owner_id, category_id, direction)
            channel = await self.resolve_payment_channel(owner_id, payment_channel_id)

            try:
                transaction = LedgerTransaction(
                    owner_id=owner_id,
                    category_id=category_id,
                    payment_channel_id=channel.id,
                    direction=direction,
                    amount=amount,
                    occurred_on=occurred_on or self._clock(),
                    description=description,
                    origin=origin,
                )
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid transaction: {e}")

            saved = await self._storage.save_transaction(transaction)
            await self._publish(TransactionChange.for_transaction(saved, ChangeKind.CREATED))
            return saved

    async def update_transaction(
        self,
        owner_id: UUID,
        transaction_id: UUID,
        amount: Optional[Decimal] = None,
        category_id: Optional[UUID] = None,
        occurred_on: Optional[date] = None,
        description: Optional[str] = None,
        payment_channel_id: Optional[UUID] = None,
    ) -> LedgerTransaction:
        """
        Edit a transaction and publish UPDATED.

        Only the fields passed are changed. An empty description clears it.
        """
        if amount is not None and amount <= 0:
            raise ValidationError("Transaction amount must be positive.")

        async with self._uow.transaction():
            previous = await self.get_transaction(owner_id, transaction_id)
            updated = previous.model_copy(deep=True)

            if category_id is not None:
                await self._checked_category(owner_id, category_id, previous.direction)
                updated.category_id = category_id
            if amount is not None:
                updated.amount = amount
            if occurred_on is not None:
                updated.occurred_on = occurred_on
            if description is not None:
                updated.description = description.strip() or None
            if payment_channel_id is not None:
                channel = await self.resolve_payment_channel(owner_id, payment_channel_id)
                updated.payment_channel_id = channel.id
            updated.updated_at = utc_now()

            saved = await self._storage.save_transaction(updated)
            await self._publish(
                TransactionChange.for_transaction(saved, ChangeKind.UPDATED, previous=previous)
            )
            return saved

    async def delete_transaction(self, owner_id: UUID, transaction_id: UUID) -> LedgerTransaction:
        """Hard-delete a transaction and publish DELETED. Returns the deleted record."""
        async with self._uow.transaction():
            transaction = await self.get_transaction(owner_id, transaction_id)
            await self._storage.delete_transaction(owner_id, transaction_id)
            await self._publish(TransactionChange.for_transaction(transaction, ChangeKind.DELETED))
            return transaction

    async def get_transaction(self, owner_id: UUID, transaction_id: UUID) -> LedgerTransaction:
        transaction = await self._storage.get_transaction(owner_id, transaction_id)
        if transaction is None:
            raise NotFoundError(
                "Transaction not found or access denied.",
                details={"transaction_id": str(transaction_id)},
            )
        return transaction

    async def list_transactions(
        self,
        owner_id: UUID,
        category_id: Optional[UUID] = None,
        direction: Optional[Direction] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[LedgerTransaction]:
        return await self._storage.list_transactions(
            owner_id,
            category_id=category_id,
            direction=direction,
            date_from=date_from,
            date_to=date_to,
        )

    async def _publish(self, change: TransactionChange) -> None:
        await self._notifier.publish(change)
        if self._audit_logger:
            await self._audit_logger.log_transaction_changed(change)
