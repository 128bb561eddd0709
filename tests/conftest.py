"""
Shared fixtures.

Time is pinned with FakeClock; every test that needs "a later day" advances
the clock instead of creating records dated in the past.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from goal_ledger.audit import AuditLogger
from goal_ledger.models.goal import Goal
from goal_ledger.orchestrator import GoalService
from goal_ledger.services.storage import InMemoryVersionedStore


START = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)

    def today(self) -> date:
        return self.now.date()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def goal_store(clock):
    return InMemoryVersionedStore(unique_together=(("owner_id", "name"),), clock=clock)


@pytest.fixture
def progress_store(clock):
    return InMemoryVersionedStore(clock=clock)


@pytest.fixture
def service(goal_store, progress_store, clock):
    return GoalService(
        goal_store,
        progress_store,
        clock=clock,
        audit_logger=AuditLogger(),
        max_attempts=20,
    )


def make_goal(**overrides) -> Goal:
    """An unsaved goal with sensible defaults."""
    values = {
        "owner_id": 1,
        "name": "Emergency fund",
        "description": "Three months of expenses",
        "color": "#00aa00",
        "target_amount": Decimal("1000"),
        "deadline": date(2025, 7, 15),
    }
    values.update(overrides)
    return Goal(**values)
