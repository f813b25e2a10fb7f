"""
Change Notifier

A publish/subscribe seam between the ledger and everything derived from
it. The ledger's write path calls publish() before returning, inside the
same unit of work, and awaits every handler in registration order.

DESIGN DECISION: Handlers run synchronously with the write. A handler
that raises aborts the triggering unit of work, so a ledger write and
the aggregates derived from it are committed together or not at all.
"""

from typing import Awaitable, Callable

import structlog

from finance_core.models.ledger import TransactionChange


ChangeHandler = Callable[[TransactionChange], Awaitable[None]]


class ChangeNotifier:
    """Registry of transaction-change handlers."""

    def __init__(self):
        self._handlers: list[ChangeHandler] = []
        self._logger = structlog.get_logger(__name__)

    def subscribe(self, handler: ChangeHandler) -> ChangeHandler:
        """
        Register a handler. Returns it, so this works as a decorator.

        Registering the same handler twice is a no-op.
        """
        if handler not in self._handlers:
            self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: ChangeHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    async def publish(self, change: TransactionChange) -> None:
        """
        Deliver a change to every handler.

        Exceptions propagate to the caller unchanged.
        """
        self._logger.debug(
            "transaction_change_published",
            change_kind=change.change_kind.value,
            transaction_id=str(change.transaction_id),
            handlers=len(self._handlers),
        )
        for handler in list(self._handlers):
            await handler(change)
