"""
Flow tests for GoalService

Each test drives the public operations end to end over in-memory stores,
with the clock pinned and advanced by hand.
"""

import asyncio

import pytest
from datetime import date
from decimal import Decimal

from goal_ledger.models.goal import GoalFilters, GoalStatus
from goal_ledger.orchestrator import GoalService, create_app_components, create_in_memory_service
from goal_ledger.services.storage import (
    ConflictError,
    DuplicateError,
    InMemoryVersionedStore,
    NotFoundError,
    TransientStoreError,
)
from goal_ledger.validation import ValidationError


OWNER = 1
STRANGER = 2


async def new_goal(service, name="Vacation", target="500", deadline=date(2025, 7, 15), owner_id=OWNER):
    return await service.create_goal(
        owner_id=owner_id,
        name=name,
        description="Summer trip",
        color="#ffcc00",
        target_amount=target,
        deadline=deadline,
    )


class TestGoalLifecycle:
    """Tests for creating, reading, editing and deleting goals."""

    @pytest.mark.asyncio
    async def test_create_goal(self, service):
        """Test a new goal is pending, empty and carries a projection."""
        goal = await new_goal(service, target="1200")

        assert goal.id is not None
        assert goal.version == 1
        assert goal.status == GoalStatus.PENDING
        assert goal.current_amount == Decimal("0")
        assert goal.installments.quantity == 6
        assert goal.installments.amount == Decimal("200")

    @pytest.mark.asyncio
    async def test_create_goal_reports_every_invalid_field(self, service):
        """Test validation collects all problems before touching the store."""
        with pytest.raises(ValidationError) as exc_info:
            await service.create_goal(
                owner_id=OWNER,
                name="",
                description=None,
                color="blue",
                target_amount="0",
                deadline=None,
            )

        assert set(exc_info.value.fields) == {"name", "description", "target_amount", "deadline"}
        assert (await service.list_goals(OWNER))[1].total_records == 0

    @pytest.mark.asyncio
    async def test_duplicate_name(self, service):
        await new_goal(service, name="Car")

        with pytest.raises(DuplicateError):
            await new_goal(service, name="Car")
        await new_goal(service, name="Car", owner_id=STRANGER)

    @pytest.mark.asyncio
    async def test_other_owner_cannot_see_goal(self, service):
        """Test another owner's goal is indistinguishable from a missing one."""
        goal = await new_goal(service)

        with pytest.raises(NotFoundError):
            await service.get_goal(STRANGER, goal.id)
        with pytest.raises(NotFoundError):
            await service.delete_goal(STRANGER, goal.id)
        with pytest.raises(NotFoundError):
            await service.record_progress(STRANGER, goal.id, "10", date(2025, 1, 15))
        assert await service.list_progress(OWNER, goal.id) == []

    @pytest.mark.asyncio
    async def test_delete_goal(self, service):
        """Test a deleted goal is gone and frees its name."""
        goal = await new_goal(service, name="Car")
        await service.delete_goal(OWNER, goal.id)

        with pytest.raises(NotFoundError):
            await service.get_goal(OWNER, goal.id)
        with pytest.raises(NotFoundError):
            await service.delete_goal(OWNER, goal.id)
        await new_goal(service, name="Car")

    @pytest.mark.asyncio
    async def test_update_goal(self, service):
        """Test a direct edit bumps the version and keeps derived fields."""
        goal = await new_goal(service)
        await service.record_progress(OWNER, goal.id, "100", date(2025, 1, 15))
        current = await service.get_goal(OWNER, goal.id)

        edited = await service.update_goal(OWNER, goal.id, current.version, name="  Road trip ", color="red")

        assert edited.name == "Road trip"
        assert edited.color == "red"
        assert edited.version == current.version + 1
        assert edited.current_amount == Decimal("100")
        assert edited.status == GoalStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_update_goal_with_stale_version(self, service):
        """Test an edit based on an old read is rejected, not retried."""
        goal = await new_goal(service)
        await service.record_progress(OWNER, goal.id, "100", date(2025, 1, 15))

        with pytest.raises(ConflictError):
            await service.update_goal(OWNER, goal.id, goal.version, name="Stale")
        assert (await service.get_goal(OWNER, goal.id)).name == "Vacation"

    @pytest.mark.asyncio
    async def test_lowering_target_finishes_goal(self, service):
        goal = await new_goal(service, target="500")
        await service.record_progress(OWNER, goal.id, "300", date(2025, 1, 15))
        current = await service.get_goal(OWNER, goal.id)

        edited = await service.update_goal(OWNER, goal.id, current.version, target_amount="300")
        assert edited.status == GoalStatus.FINISHED
        assert edited.installments.is_empty

    @pytest.mark.asyncio
    async def test_derived_fields_cannot_be_edited(self, service):
        """Test derived fields are rejected as validation errors and nothing is written."""
        goal = await new_goal(service)

        with pytest.raises(ValidationError) as exc_info:
            await service.update_goal(OWNER, goal.id, goal.version, current_amount="500")
        assert exc_info.value.fields == {"current_amount": "cannot be edited directly"}
        with pytest.raises(ValidationError) as exc_info:
            await service.update_goal(OWNER, goal.id, goal.version, status=GoalStatus.FINISHED, color="red")
        assert set(exc_info.value.fields) == {"status"}

        loaded = await service.get_goal(OWNER, goal.id)
        assert loaded.version == goal.version
        assert loaded.color == goal.color


class TestProgressFlow:
    """Tests for ledger operations and the reconciliation they trigger."""

    @pytest.mark.asyncio
    async def test_finish_then_withdraw(self, service):
        """Test finished is re-derived when the ledger drops below target."""
        goal = await new_goal(service, target="500")

        await service.record_progress(OWNER, goal.id, "500", date(2025, 1, 15))
        finished = await service.get_goal(OWNER, goal.id)
        assert finished.status == GoalStatus.FINISHED
        assert finished.current_amount == Decimal("500")

        await service.record_progress(OWNER, goal.id, "-500", date(2025, 1, 15))
        reopened = await service.get_goal(OWNER, goal.id)
        assert reopened.status == GoalStatus.IN_PROGRESS
        assert reopened.current_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_list_and_get_progress(self, service):
        goal = await new_goal(service)
        late = await service.record_progress(OWNER, goal.id, "20", date(2025, 1, 14))
        early = await service.record_progress(OWNER, goal.id, "10", date(2025, 1, 2))

        entries = await service.list_progress(OWNER, goal.id)
        assert [entry.id for entry in entries] == [early.id, late.id]
        assert (await service.get_progress(OWNER, late.id)).amount == Decimal("20")
        with pytest.raises(NotFoundError):
            await service.get_progress(STRANGER, late.id)

    @pytest.mark.asyncio
    async def test_delete_progress_reconciles(self, service):
        goal = await new_goal(service)
        first = await service.record_progress(OWNER, goal.id, "100", date(2025, 1, 10))
        await service.record_progress(OWNER, goal.id, "50", date(2025, 1, 11))

        await service.delete_progress(OWNER, first.id)

        assert (await service.get_goal(OWNER, goal.id)).current_amount == Decimal("50")
        with pytest.raises(NotFoundError):
            await service.delete_progress(OWNER, first.id)

    @pytest.mark.asyncio
    async def test_delete_progress_of_other_owner(self, service):
        goal = await new_goal(service)
        entry = await service.record_progress(OWNER, goal.id, "100", date(2025, 1, 10))

        with pytest.raises(NotFoundError):
            await service.delete_progress(STRANGER, entry.id)
        assert (await service.get_goal(OWNER, goal.id)).current_amount == Decimal("100")

    @pytest.mark.asyncio
    async def test_update_progress(self, service):
        """Test rewriting an entry with and without an expected version."""
        goal = await new_goal(service)
        entry = await service.record_progress(OWNER, goal.id, "100", date(2025, 1, 10))

        rewritten = await service.update_progress(OWNER, entry.id, "150", date(2025, 1, 12), version=entry.version)
        assert rewritten.version == entry.version + 1
        assert (await service.get_goal(OWNER, goal.id)).current_amount == Decimal("150")

        with pytest.raises(ConflictError):
            await service.update_progress(OWNER, entry.id, "175", date(2025, 1, 12), version=entry.version)

        await service.update_progress(OWNER, entry.id, "175", date(2025, 1, 12))
        assert (await service.get_goal(OWNER, goal.id)).current_amount == Decimal("175")

    @pytest.mark.asyncio
    async def test_invalid_progress(self, service):
        """Test zero amounts and far-future dates are rejected."""
        goal = await new_goal(service)

        with pytest.raises(ValidationError) as exc_info:
            await service.record_progress(OWNER, goal.id, "0", date(2025, 3, 1))

        assert set(exc_info.value.fields) == {"amount", "entry_date"}
        assert await service.list_progress(OWNER, goal.id) == []

    @pytest.mark.asyncio
    async def test_concurrent_contributions(self, service):
        """Test many concurrent writers leave the goal equal to its ledger total."""
        goal = await new_goal(service, target="1000")

        await asyncio.gather(*(
            service.record_progress(OWNER, goal.id, "25", date(2025, 1, 15))
            for _ in range(8)
        ))

        reconciled = await service.get_goal(OWNER, goal.id)
        entries = await service.list_progress(OWNER, goal.id)
        assert len(entries) == 8
        assert reconciled.current_amount == Decimal("200")
        assert reconciled.status == GoalStatus.IN_PROGRESS


class TestDeadlines:
    """Tests for lazy failure on read."""

    @pytest.mark.asyncio
    async def test_get_goal_persists_failure(self, service, goal_store, clock):
        """Test reading an expired open goal fails it and bumps its version."""
        goal = await new_goal(service, deadline=date(2025, 1, 20))
        await service.record_progress(OWNER, goal.id, "40", date(2025, 1, 15))
        before = await goal_store.get(goal.id)

        clock.advance(days=6)
        failed = await service.get_goal(OWNER, goal.id)

        assert failed.status == GoalStatus.FAILED
        assert failed.current_amount == Decimal("40")
        assert failed.version == before.version + 1
        assert failed.installments.is_empty
        stored = await goal_store.get(goal.id)
        assert stored.status == GoalStatus.FAILED

        again = await service.get_goal(OWNER, goal.id)
        assert again.version == failed.version

    @pytest.mark.asyncio
    async def test_deadline_day_fails(self, service, clock):
        """Test a goal is open the day before its deadline and failed on the day."""
        goal = await new_goal(service, deadline=date(2025, 1, 20))
        clock.advance(days=4)
        assert (await service.get_goal(OWNER, goal.id)).status == GoalStatus.PENDING

        clock.advance(days=1)
        due = await service.get_goal(OWNER, goal.id)
        assert due.status == GoalStatus.FAILED
        assert due.installments.is_empty

    @pytest.mark.asyncio
    async def test_deadline_today_rejected(self, service, clock):
        with pytest.raises(ValidationError) as exc_info:
            await new_goal(service, deadline=clock.today())
        assert set(exc_info.value.fields) == {"deadline"}

    @pytest.mark.asyncio
    async def test_list_shows_failure_without_writing(self, service, goal_store, clock):
        """Test listings show the failure but leave the stored goal untouched."""
        goal = await new_goal(service, deadline=date(2025, 1, 20))
        clock.advance(days=10)

        goals, _ = await service.list_goals(OWNER)

        assert goals[0].status == GoalStatus.FAILED
        stored = await goal_store.get(goal.id)
        assert stored.status == GoalStatus.PENDING
        assert stored.version == goal.version

    @pytest.mark.asyncio
    async def test_failed_goal_is_sticky(self, service, clock):
        """Test extra contributions below target keep a failed goal failed."""
        goal = await new_goal(service, target="500", deadline=date(2025, 1, 20))
        clock.advance(days=6)
        await service.get_goal(OWNER, goal.id)

        await service.record_progress(OWNER, goal.id, "100", date(2025, 1, 21))
        assert (await service.get_goal(OWNER, goal.id)).status == GoalStatus.FAILED

        await service.record_progress(OWNER, goal.id, "400", date(2025, 1, 21))
        assert (await service.get_goal(OWNER, goal.id)).status == GoalStatus.FINISHED

    @pytest.mark.asyncio
    async def test_moving_deadline_reopens_failed_goal(self, service, clock):
        goal = await new_goal(service, deadline=date(2025, 1, 20))
        await service.record_progress(OWNER, goal.id, "40", date(2025, 1, 15))
        clock.advance(days=6)
        failed = await service.get_goal(OWNER, goal.id)

        edited = await service.update_goal(OWNER, goal.id, failed.version, deadline=date(2025, 6, 30))
        assert edited.status == GoalStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_reconcile_goal(self, service, clock):
        goal = await new_goal(service, deadline=date(2025, 1, 20))
        clock.advance(days=6)

        assert (await service.reconcile_goal(OWNER, goal.id)).status == GoalStatus.FAILED


class TestListGoals:
    """Tests for goal listings."""

    @pytest.mark.asyncio
    async def test_paging_and_metadata(self, service):
        for name in ("Car", "House", "Boat"):
            await new_goal(service, name=name)
        await new_goal(service, name="Car", owner_id=STRANGER)

        goals, metadata = await service.list_goals(OWNER, GoalFilters(page=2, page_size=2, sort="name"))

        assert [goal.name for goal in goals] == ["House"]
        assert metadata.total_records == 3
        assert metadata.last_page == 2
        assert metadata.current_page == 2
        assert goals[0].installments is not None

    @pytest.mark.asyncio
    async def test_name_search(self, service):
        await new_goal(service, name="New car")
        await new_goal(service, name="House")

        goals, _ = await service.list_goals(OWNER, GoalFilters(name="CAR"))
        assert [goal.name for goal in goals] == ["New car"]

    @pytest.mark.asyncio
    async def test_empty_listing(self, service):
        goals, metadata = await service.list_goals(OWNER)
        assert goals == []
        assert metadata.last_page == 0

    @pytest.mark.asyncio
    async def test_invalid_filters(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.list_goals(OWNER, GoalFilters(page=0, sort="target_amount"))
        assert set(exc_info.value.fields) == {"page", "sort"}


class FailingUpdateStore(InMemoryVersionedStore):
    """Goal store whose updates fail with a fixed error."""

    def __init__(self, error, **kwargs):
        super().__init__(**kwargs)
        self.error = error
        self.update_calls = 0

    async def update(self, record):
        self.update_calls += 1
        raise self.error


class TestReconciliationFailures:
    """Tests for failures after the ledger write."""

    @pytest.mark.asyncio
    async def test_transient_error_propagates_without_retry(self, progress_store, clock):
        """Test a store timeout surfaces at once and the entry stays saved."""
        goal_store = FailingUpdateStore(TransientStoreError("timeout"), clock=clock)
        service = GoalService(goal_store, progress_store, clock=clock, max_attempts=5)
        goal = await new_goal(service)

        with pytest.raises(TransientStoreError):
            await service.record_progress(OWNER, goal.id, "10", date(2025, 1, 15))

        assert goal_store.update_calls == 1
        assert len(await service.list_progress(OWNER, goal.id)) == 1
        assert (await goal_store.get(goal.id)).current_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_exhausted_conflicts_keep_the_entry(self, progress_store, clock):
        """Test a ConflictError after the budget leaves the ledger write in place."""
        goal_store = FailingUpdateStore(ConflictError("moved"), clock=clock)
        service = GoalService(goal_store, progress_store, clock=clock, max_attempts=4)
        goal = await new_goal(service)

        with pytest.raises(ConflictError, match="re-fetch"):
            await service.record_progress(OWNER, goal.id, "10", date(2025, 1, 15))

        assert goal_store.update_calls == 4
        assert len(await service.list_progress(OWNER, goal.id)) == 1


class TestFactories:
    """Tests for component wiring."""

    @pytest.mark.asyncio
    async def test_in_memory_service(self, clock):
        service = create_in_memory_service(clock=clock)
        goal = await new_goal(service)
        assert (await service.get_goal(OWNER, goal.id)).name == "Vacation"

    @pytest.mark.asyncio
    async def test_app_components_with_database(self, tmp_path, monkeypatch, clock):
        """Test the SQL wiring creates the schema and serves requests."""
        monkeypatch.setenv("GOAL_LEDGER_STORE_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
        monkeypatch.setenv("GOAL_LEDGER_RECONCILE_BACKOFF_MAX_SECONDS", "0")
        monkeypatch.setenv("GOAL_LEDGER_RECONCILE_BACKOFF_MIN_SECONDS", "0")

        service, engine = await create_app_components(use_database=True, clock=clock)
        try:
            goal = await new_goal(service, target="500")
            await service.record_progress(OWNER, goal.id, "500", date(2025, 1, 15))
            finished = await service.get_goal(OWNER, goal.id)
            assert finished.status == GoalStatus.FINISHED
            assert finished.current_amount == Decimal("500")
        finally:
            await engine.dispose()
