"""
Storage Services Package

Provides the generic versioned-record contract, its error taxonomy, the
bounded conflict-retry combinator and two implementations: SQL (SQLAlchemy
async) and in-memory.
"""

from goal_ledger.services.storage.interface import (
    ConflictError,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransientStoreError,
    VersionedRecord,
    VersionedStore,
)
from goal_ledger.services.storage.memory import InMemoryVersionedStore
from goal_ledger.services.storage.occ import conflict_backoff, retry_on_conflict
from goal_ledger.services.storage.sql import (
    SqlVersionedStore,
    create_engine_from_settings,
    create_schema,
    create_sql_stores,
    goal_progress_table,
    goals_table,
    metadata,
)

__all__ = [
    # Interfaces
    "VersionedRecord",
    "VersionedStore",
    # Exceptions
    "ConflictError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "TransientStoreError",
    # Optimistic concurrency
    "conflict_backoff",
    "retry_on_conflict",
    # In-memory implementation
    "InMemoryVersionedStore",
    # SQL implementation
    "SqlVersionedStore",
    "create_engine_from_settings",
    "create_schema",
    "create_sql_stores",
    "goal_progress_table",
    "goals_table",
    "metadata",
]
