"""
Shared fixtures: a fully wired in-memory stack with a controllable clock.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from finance_core.config import SchedulerSettings, SystemRecordSettings
from finance_core.models.ledger import Direction
from finance_core.orchestrator import create_app_components


class FixedClock:
    """Callable returning a settable 'today'."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


@pytest.fixture
def clock():
    return FixedClock(date(2024, 1, 15))


@pytest.fixture
def scheduler_settings():
    return SchedulerSettings(
        fire_max_attempts=3,
        fire_retry_min_seconds=0,
        fire_retry_max_seconds=0,
    )


@pytest.fixture
def app(clock, scheduler_settings):
    return create_app_components(
        scheduler_settings=scheduler_settings,
        system_records=SystemRecordSettings(),
        clock=clock,
    )


@pytest_asyncio.fixture
async def owner_id(app):
    owner = uuid4()
    await app.ledger.provision_system_records(owner)
    return owner


@pytest_asyncio.fixture
async def groceries(app, owner_id):
    return await app.ledger.create_category(owner_id, "Groceries", Direction.EXPENSE)


@pytest_asyncio.fixture
async def salary(app, owner_id):
    return await app.ledger.create_category(owner_id, "Salary", Direction.INCOME)


async def add_expense(app, owner_id, category, amount, day, **kwargs):
    return await app.ledger.create_transaction(
        owner_id=owner_id,
        category_id=category.id,
        amount=Decimal(amount),
        direction=Direction.EXPENSE,
        occurred_on=day,
        **kwargs,
    )
