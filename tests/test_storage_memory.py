"""Tests for the in-memory versioned store."""

import asyncio

import pytest
from datetime import date
from decimal import Decimal

from goal_ledger.models.goal import GoalProgress
from goal_ledger.services.storage import (
    ConflictError,
    DuplicateError,
    NotFoundError,
)

from conftest import START, make_goal


class TestInsertAndGet:
    """Tests for insert and get."""

    @pytest.mark.asyncio
    async def test_insert_assigns_identity(self, goal_store):
        """Test the store assigns id, version and created_at."""
        goal = make_goal()
        saved = await goal_store.insert(goal)

        assert saved.id == 1
        assert saved.version == 1
        assert saved.created_at == START
        assert goal.id is None

    @pytest.mark.asyncio
    async def test_get_returns_a_copy(self, goal_store):
        """Test mutating a read record does not touch the store."""
        saved = await goal_store.insert(make_goal())
        first = await goal_store.get(saved.id)
        first.name = "Changed locally"

        second = await goal_store.get(saved.id)
        assert second.name == "Emergency fund"

    @pytest.mark.asyncio
    async def test_get_outside_scope_is_not_found(self, goal_store):
        """Test another owner's record reads as missing."""
        saved = await goal_store.insert(make_goal(owner_id=1))

        with pytest.raises(NotFoundError):
            await goal_store.get(saved.id, owner_id=2)
        assert (await goal_store.get(saved.id, owner_id=1)).id == saved.id

    @pytest.mark.asyncio
    async def test_duplicate_name_per_owner(self, goal_store):
        """Test uniqueness holds per owner among live records only."""
        first = await goal_store.insert(make_goal(name="Car"))

        with pytest.raises(DuplicateError):
            await goal_store.insert(make_goal(name="Car"))

        await goal_store.insert(make_goal(name="Car", owner_id=2))
        await goal_store.soft_delete(first.id)
        await goal_store.insert(make_goal(name="Car"))


class TestCompareAndSwap:
    """Tests for versioned update."""

    @pytest.mark.asyncio
    async def test_stale_writer_loses(self, goal_store):
        """Test exactly one of two writers holding version 1 wins."""
        saved = await goal_store.insert(make_goal())
        writer_a = await goal_store.get(saved.id)
        writer_b = await goal_store.get(saved.id)

        writer_a.color = "red"
        assert await goal_store.update(writer_a) == 2

        writer_b.color = "green"
        with pytest.raises(ConflictError):
            await goal_store.update(writer_b)

        fresh = await goal_store.get(saved.id)
        assert fresh.color == "red"
        fresh.color = "green"
        assert await goal_store.update(fresh) == 3

    @pytest.mark.asyncio
    async def test_concurrent_writers_one_wins(self, goal_store):
        """Test concurrent updates from the same version: one succeeds, the rest conflict."""
        saved = await goal_store.insert(make_goal())
        writers = [await goal_store.get(saved.id) for _ in range(4)]
        for i, writer in enumerate(writers):
            writer.description = f"writer {i}"

        results = await asyncio.gather(
            *(goal_store.update(writer) for writer in writers),
            return_exceptions=True,
        )

        assert results.count(2) == 1
        assert sum(isinstance(result, ConflictError) for result in results) == 3
        assert (await goal_store.get(saved.id)).version == 2

    @pytest.mark.asyncio
    async def test_update_keeps_created_at(self, goal_store, clock):
        """Test store-managed fields are not taken from the caller."""
        saved = await goal_store.insert(make_goal())
        clock.advance(days=3)
        saved.created_at = clock()

        await goal_store.update(saved)
        assert (await goal_store.get(saved.id)).created_at == START

    @pytest.mark.asyncio
    async def test_update_of_deleted_record_conflicts(self, goal_store):
        """Test a deleted record cannot be updated."""
        saved = await goal_store.insert(make_goal())
        await goal_store.soft_delete(saved.id)

        with pytest.raises(ConflictError):
            await goal_store.update(saved)

    @pytest.mark.asyncio
    async def test_rename_onto_live_name_is_duplicate(self, goal_store):
        """Test the uniqueness check also applies to updates."""
        await goal_store.insert(make_goal(name="Car"))
        house = await goal_store.insert(make_goal(name="House"))
        house.name = "Car"

        with pytest.raises(DuplicateError):
            await goal_store.update(house)


class TestSoftDelete:
    """Tests for soft delete."""

    @pytest.mark.asyncio
    async def test_deleted_records_are_invisible(self, goal_store):
        """Test get and find skip deleted records."""
        saved = await goal_store.insert(make_goal())
        await goal_store.soft_delete(saved.id)

        with pytest.raises(NotFoundError):
            await goal_store.get(saved.id)
        assert await goal_store.find() == ([], 0)

    @pytest.mark.asyncio
    async def test_second_delete_is_not_found(self, goal_store):
        saved = await goal_store.insert(make_goal())
        await goal_store.soft_delete(saved.id)

        with pytest.raises(NotFoundError):
            await goal_store.soft_delete(saved.id)

    @pytest.mark.asyncio
    async def test_delete_outside_scope_is_not_found(self, progress_store):
        """Test scope keywords restrict which record a delete may hit."""
        entry = await progress_store.insert(
            GoalProgress(goal_id=1, amount=Decimal("5"), entry_date=date(2025, 1, 1))
        )

        with pytest.raises(NotFoundError):
            await progress_store.soft_delete(entry.id, goal_id=2)
        await progress_store.soft_delete(entry.id, goal_id=1)


class TestFind:
    """Tests for find."""

    @pytest.mark.asyncio
    async def test_filter_search_sort_and_page(self, goal_store):
        """Test equality filters, name search, ordering and paging together."""
        await goal_store.insert(make_goal(name="New car", deadline=date(2025, 9, 1)))
        await goal_store.insert(make_goal(name="House", deadline=date(2026, 1, 1)))
        await goal_store.insert(make_goal(name="car repairs", deadline=date(2025, 3, 1)))
        await goal_store.insert(make_goal(name="Other owner car", owner_id=2))

        goals, total = await goal_store.find(
            {"owner_id": 1},
            search={"name": "CAR"},
            order_by=("deadline", "id"),
        )
        assert total == 2
        assert [goal.name for goal in goals] == ["car repairs", "New car"]

        goals, total = await goal_store.find({"owner_id": 1}, order_by=("-name", "id"), limit=2, offset=1)
        assert total == 3
        assert [goal.name for goal in goals] == ["House", "car repairs"]

    @pytest.mark.asyncio
    async def test_empty_search_term_matches_all(self, goal_store):
        await goal_store.insert(make_goal(name="A"))
        await goal_store.insert(make_goal(name="B"))

        _, total = await goal_store.find({"owner_id": 1}, search={"name": ""})
        assert total == 2

    @pytest.mark.asyncio
    async def test_search_term_is_literal(self, goal_store):
        """Test wildcard-looking characters in a search term match only themselves."""
        for name in ("a_b", "ab", "50% house", "500 house"):
            await goal_store.insert(make_goal(name=name))

        goals, _ = await goal_store.find({"owner_id": 1}, search={"name": "_"})
        assert [goal.name for goal in goals] == ["a_b"]
        goals, _ = await goal_store.find({"owner_id": 1}, search={"name": "%"})
        assert [goal.name for goal in goals] == ["50% house"]
