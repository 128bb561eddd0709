"""
Abstract Versioned Storage Interface

DESIGN DECISION: Every persisted entity (goal, progress entry, and any future
entity kind) is stored through ONE generic contract. The contract only
depends on three fields every record carries:

    id       - store-assigned identity
    version  - monotonic counter, the sole concurrency token
    deleted  - soft-delete flag, deleted records are invisible to reads

Updates are compare-and-swap on the version counter. No locks are held
between reading a record and writing it back; a writer that lost the race
gets a ConflictError and must re-read.

This allows us to:
1. Run the same concurrency protocol against SQL or in-memory storage
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, Mapping, Optional, Protocol, Sequence, TypeVar


class VersionedRecord(Protocol):
    """Capability every stored entity must expose."""

    id: Optional[int]
    version: int
    deleted: bool


T = TypeVar("T", bound=VersionedRecord)


class VersionedStore(ABC, Generic[T]):
    """
    Abstract interface for versioned record storage.

    Any storage implementation (SQL, in-memory, ...) must implement these
    methods with the semantics documented here. Every call is a single
    blocking/suspending store operation; nothing else in the system suspends.
    """

    @abstractmethod
    async def insert(self, record: T) -> T:
        """
        Insert a new record.

        The store assigns id, version = 1, deleted = False and created_at
        atomically. The record's own values for those fields are ignored.

        Returns:
            A copy of the record carrying the assigned id, version and
            creation timestamp

        Raises:
            DuplicateError: If a uniqueness constraint is violated
            TransientStoreError: On timeout or connection failure
        """
        pass

    @abstractmethod
    async def update(self, record: T) -> int:
        """
        Conditionally update a record (compare-and-swap).

        Matches on id AND version = record.version AND deleted = false.
        Either every field is written or nothing is.

        Returns:
            The new version (record.version + 1). The caller must store it
            in its in-memory copy before any further update.

        Raises:
            ConflictError: Zero rows matched (concurrently modified, deleted
                or never existed)
            DuplicateError: If the new values violate a uniqueness constraint
            TransientStoreError: On timeout or connection failure
        """
        pass

    @abstractmethod
    async def soft_delete(self, record_id: int, **scope: Any) -> None:
        """
        Set the deleted flag on a record.

        No version check: last delete wins. Scope keywords (e.g. owner_id)
        further restrict which row may match.

        Raises:
            NotFoundError: Zero rows matched (already deleted or missing)
            TransientStoreError: On timeout or connection failure
        """
        pass

    @abstractmethod
    async def get(self, record_id: int, **scope: Any) -> T:
        """
        Read a single non-deleted record.

        Raises:
            NotFoundError: Absent, deleted, or outside the given scope
            TransientStoreError: On timeout or connection failure
        """
        pass

    @abstractmethod
    async def find(
        self,
        where: Optional[Mapping[str, Any]] = None,
        *,
        search: Optional[Mapping[str, str]] = None,
        order_by: Sequence[str] = ("id",),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[T], int]:
        """
        List non-deleted records.

        Args:
            where: Field equality filters
            search: Field -> case-insensitive substring filters (empty terms ignored)
            order_by: Field names, '-' prefix for descending
            limit: Maximum number of results (None for all)
            offset: Number of results to skip

        Returns:
            (page of records, total number of matching records)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """
    Entity not found in storage.

    Also raised when the entity exists but belongs to someone else, so
    callers cannot discover other owners' records.
    """
    pass


class DuplicateError(StorageError):
    """Attempted to insert or rename into a uniqueness violation."""
    pass


class ConflictError(StorageError):
    """A compare-and-swap update matched no row: the version was stale."""
    pass


class TransientStoreError(StorageError):
    """Timeout or connection failure. Never retried by the reconciler."""
    pass
