"""Services package."""

from goal_ledger.services.storage import (
    ConflictError,
    DuplicateError,
    InMemoryVersionedStore,
    NotFoundError,
    SqlVersionedStore,
    StorageError,
    TransientStoreError,
    VersionedRecord,
    VersionedStore,
    retry_on_conflict,
)

__all__ = [
    # Storage services
    "ConflictError",
    "DuplicateError",
    "InMemoryVersionedStore",
    "NotFoundError",
    "SqlVersionedStore",
    "StorageError",
    "TransientStoreError",
    "VersionedRecord",
    "VersionedStore",
    "retry_on_conflict",
]
