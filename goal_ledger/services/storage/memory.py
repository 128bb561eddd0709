"""
In-Memory Storage Implementation

Implements the versioned store contract over a dict, one store per entity
kind. Used by the test-suite and for local runs without a database.

Every operation starts with a suspension point, so concurrent tasks
interleave between operations the way they would against a real store.
Each operation is atomic once it resumes (single event loop, no awaits
inside the critical section). Records are copied on the way in and out:
callers never share an instance with the store or with each other.
"""

import asyncio
from typing import Any, Callable, Generic, Mapping, Optional, Sequence

from pydantic import BaseModel

from goal_ledger.clock import Clock, utc_now
from goal_ledger.services.storage.interface import (
    ConflictError,
    DuplicateError,
    NotFoundError,
    T,
    VersionedStore,
)


class InMemoryVersionedStore(VersionedStore[T], Generic[T]):
    """
    Dict-backed versioned store.

    Args:
        unique_together: Groups of fields that must be unique among
            non-deleted records, e.g. (("owner_id", "name"),)
        clock: Source for created_at timestamps
    """

    def __init__(
        self,
        unique_together: Sequence[Sequence[str]] = (),
        clock: Clock = utc_now,
    ):
        self._rows: dict[int, T] = {}
        self._next_id = 1
        self._unique_together = [tuple(group) for group in unique_together]
        self._clock = clock

    @staticmethod
    def _copy(record: T) -> T:
        return record.model_copy(deep=True)

    def _live(self) -> list[T]:
        return [row for row in self._rows.values() if not row.deleted]

    def _check_unique(self, record: T, exclude_id: Optional[int] = None) -> None:
        for group in self._unique_together:
            key = tuple(getattr(record, field) for field in group)
            for row in self._live():
                if row.id == exclude_id:
                    continue
                if tuple(getattr(row, field) for field in group) == key:
                    raise DuplicateError(
                        f"{type(record).__name__} with {dict(zip(group, key))} already exists"
                    )

    @staticmethod
    def _matches_scope(row: Any, scope: Mapping[str, Any]) -> bool:
        return all(getattr(row, field) == value for field, value in scope.items())

    async def insert(self, record: T) -> T:
        await asyncio.sleep(0)
        self._check_unique(record)

        stored = record.model_copy(
            deep=True,
            update={
                "id": self._next_id,
                "version": 1,
                "deleted": False,
                "created_at": self._clock(),
            },
        )
        self._next_id += 1
        self._rows[stored.id] = stored
        return self._copy(stored)

    async def update(self, record: T) -> int:
        await asyncio.sleep(0)
        current = self._rows.get(record.id)
        if current is None or current.deleted or current.version != record.version:
            raise ConflictError(
                f"{type(record).__name__} {record.id} was modified or deleted "
                f"(expected version {record.version})"
            )
        self._check_unique(record, exclude_id=record.id)

        new_version = current.version + 1
        # id, created_at and deleted are owned by the store
        self._rows[record.id] = record.model_copy(
            deep=True,
            update={
                "version": new_version,
                "deleted": False,
                "created_at": current.created_at,
            },
        )
        return new_version

    async def soft_delete(self, record_id: int, **scope: Any) -> None:
        await asyncio.sleep(0)
        current = self._rows.get(record_id)
        if current is None or current.deleted or not self._matches_scope(current, scope):
            raise NotFoundError(f"Record not found: {record_id}")
        self._rows[record_id] = current.model_copy(update={"deleted": True})

    async def get(self, record_id: int, **scope: Any) -> T:
        await asyncio.sleep(0)
        current = self._rows.get(record_id)
        if current is None or current.deleted or not self._matches_scope(current, scope):
            raise NotFoundError(f"Record not found: {record_id}")
        return self._copy(current)

    async def find(
        self,
        where: Optional[Mapping[str, Any]] = None,
        *,
        search: Optional[Mapping[str, str]] = None,
        order_by: Sequence[str] = ("id",),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[T], int]:
        await asyncio.sleep(0)
        rows = [row for row in self._live() if self._matches_scope(row, where or {})]

        for field, term in (search or {}).items():
            if term:
                rows = [row for row in rows if term.lower() in str(getattr(row, field)).lower()]

        # Stable sorts applied from the least significant key up
        for key in reversed(order_by):
            field = key.lstrip("-")
            rows.sort(key=_sort_key(field), reverse=key.startswith("-"))

        total = len(rows)
        end = None if limit is None else offset + limit
        return [self._copy(row) for row in rows[offset:end]], total


def _sort_key(field: str) -> Callable[[BaseModel], Any]:
    def key(row: BaseModel) -> Any:
        value = getattr(row, field)
        if isinstance(value, str):
            return value.lower()
        return value
    return key
