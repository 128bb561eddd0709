"""
SQL Storage Implementation

Implements the versioned store contract with SQLAlchemy async Core against a
relational database (PostgreSQL via asyncpg in production, SQLite via
aiosqlite for local runs and tests).

The compare-and-swap is a single statement:

    UPDATE goals SET ..., version = version + 1
    WHERE id = :id AND version = :expected AND deleted = false
    RETURNING version

No row returned means another writer got there first. Nothing is locked
between the caller's read and this write.

Each call gets its own connection and transaction, bounded by the configured
operation timeout. A timeout or connection failure becomes a
TransientStoreError; it is never reported as a conflict.
"""

import asyncio
from typing import Any, Awaitable, Callable, Generic, Mapping, Optional, Sequence, TypeVar

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    false,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import DataError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from goal_ledger.clock import Clock, utc_now
from goal_ledger.config import StoreSettings
from goal_ledger.models.goal import Goal, GoalProgress, GoalStatus
from goal_ledger.services.storage.interface import (
    ConflictError,
    DuplicateError,
    NotFoundError,
    StorageError,
    T,
    TransientStoreError,
    VersionedStore,
)

R = TypeVar("R")

metadata = MetaData()

goals_table = Table(
    "goals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("name", String(500), nullable=False),
    Column("description", String(1000), nullable=False),
    Column("color", String(32), nullable=False),
    Column("target_amount", Numeric(14, 2), nullable=False),
    Column("current_amount", Numeric(14, 2), nullable=False, default=0),
    Column("deadline", Date, nullable=False),
    Column(
        "status",
        Enum(
            GoalStatus,
            name="goal_status",
            native_enum=False,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    ),
    Column("version", Integer, nullable=False, default=1),
    Column("deleted", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

# One live goal name per owner; deleted goals free their name
Index(
    "unique_user_goal_name",
    goals_table.c.owner_id,
    goals_table.c.name,
    unique=True,
    postgresql_where=goals_table.c.deleted == false(),
    sqlite_where=goals_table.c.deleted == false(),
)

goal_progress_table = Table(
    "goal_progress",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("goal_id", Integer, ForeignKey("goals.id"), nullable=False, index=True),
    Column("amount", Numeric(14, 2), nullable=False),
    Column("entry_date", Date, nullable=False),
    Column("version", Integer, nullable=False, default=1),
    Column("deleted", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

# Columns owned by the store, never copied from the caller's record
STORE_MANAGED = ("id", "version", "deleted", "created_at")


def escape_like(term: str) -> str:
    """Make LIKE wildcards in a search term match literally (escape char is a backslash)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def create_engine_from_settings(settings: StoreSettings) -> AsyncEngine:
    """Create the async engine for the configured database."""
    return create_async_engine(
        settings.database_url,
        echo=settings.echo,
        future=True,
        pool_pre_ping=True,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables and indexes that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


class SqlVersionedStore(VersionedStore[T], Generic[T]):
    """
    SQLAlchemy implementation of the versioned store.

    One instance per entity kind: the table and model class specialise the
    generic protocol to that entity's schema.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        table: Table,
        model: type[T],
        timeout_seconds: float = 3.0,
        clock: Clock = utc_now,
    ):
        self._engine = engine
        self._table = table
        self._model = model
        self._timeout = timeout_seconds
        self._clock = clock

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _run(self, work: Callable[[AsyncConnection], Awaitable[R]]) -> R:
        """Run work in its own transaction, under the operation deadline."""

        async def transaction() -> R:
            async with self._engine.begin() as conn:
                return await work(conn)

        try:
            return await asyncio.wait_for(transaction(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise TransientStoreError(
                f"{self._table.name}: store call exceeded {self._timeout}s"
            ) from e
        except IntegrityError as e:
            if "unique" in str(e.orig).lower():
                raise DuplicateError(f"{self._table.name}: {e.orig}") from e
            raise StorageError(f"{self._table.name}: {e.orig}") from e
        except DataError as e:
            # Values the column cannot hold, e.g. numeric overflow
            raise StorageError(f"{self._table.name}: {e.orig}") from e
        except (OperationalError, InterfaceError) as e:
            raise TransientStoreError(f"{self._table.name}: {e.orig}") from e

    def _values(self, record: T) -> dict[str, Any]:
        """Persistable field values of a record, minus store-managed columns."""
        data = record.model_dump()
        return {
            name: value
            for name, value in data.items()
            if name in self._table.c and name not in STORE_MANAGED
        }

    def _to_model(self, row: Mapping[str, Any]) -> T:
        return self._model.model_validate(dict(row))

    def _scoped(self, record_id: int, scope: Mapping[str, Any]) -> list:
        conditions = [self._table.c.id == record_id, self._table.c.deleted == false()]
        conditions.extend(self._table.c[field] == value for field, value in scope.items())
        return conditions

    def _order_clauses(self, order_by: Sequence[str]) -> list:
        clauses = []
        for key in order_by:
            column = self._table.c[key.lstrip("-")]
            if isinstance(column.type, String):
                column = func.lower(column)
            clauses.append(column.desc() if key.startswith("-") else column.asc())
        return clauses

    # -------------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------------

    async def insert(self, record: T) -> T:
        created_at = self._clock()
        stmt = (
            insert(self._table)
            .values(**self._values(record), version=1, deleted=False, created_at=created_at)
            .returning(self._table.c.id, self._table.c.version, self._table.c.created_at)
        )

        async def work(conn: AsyncConnection):
            return (await conn.execute(stmt)).one()

        row = await self._run(work)
        return record.model_copy(update={
            "id": row.id,
            "version": row.version,
            "deleted": False,
            "created_at": row.created_at,
        })

    async def update(self, record: T) -> int:
        stmt = (
            update(self._table)
            .where(
                self._table.c.id == record.id,
                self._table.c.version == record.version,
                self._table.c.deleted == false(),
            )
            .values(**self._values(record), version=self._table.c.version + 1)
            .returning(self._table.c.version)
        )

        async def work(conn: AsyncConnection) -> Optional[int]:
            return (await conn.execute(stmt)).scalar_one_or_none()

        new_version = await self._run(work)
        if new_version is None:
            raise ConflictError(
                f"{self._table.name} {record.id} was modified or deleted "
                f"(expected version {record.version})"
            )
        return new_version

    async def soft_delete(self, record_id: int, **scope: Any) -> None:
        stmt = (
            update(self._table)
            .where(*self._scoped(record_id, scope))
            .values(deleted=True)
        )

        async def work(conn: AsyncConnection) -> int:
            return (await conn.execute(stmt)).rowcount

        if await self._run(work) == 0:
            raise NotFoundError(f"{self._table.name} not found: {record_id}")

    async def get(self, record_id: int, **scope: Any) -> T:
        stmt = select(self._table).where(*self._scoped(record_id, scope))

        async def work(conn: AsyncConnection):
            return (await conn.execute(stmt)).mappings().one_or_none()

        row = await self._run(work)
        if row is None:
            raise NotFoundError(f"{self._table.name} not found: {record_id}")
        return self._to_model(row)

    async def find(
        self,
        where: Optional[Mapping[str, Any]] = None,
        *,
        search: Optional[Mapping[str, str]] = None,
        order_by: Sequence[str] = ("id",),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[T], int]:
        conditions = [self._table.c.deleted == false()]
        conditions.extend(self._table.c[field] == value for field, value in (where or {}).items())
        conditions.extend(
            self._table.c[field].ilike(f"%{escape_like(term)}%", escape="\\")
            for field, term in (search or {}).items()
            if term
        )

        count_stmt = select(func.count()).select_from(self._table).where(*conditions)
        page_stmt = (
            select(self._table)
            .where(*conditions)
            .order_by(*self._order_clauses(order_by))
            .offset(offset)
        )
        if limit is not None:
            page_stmt = page_stmt.limit(limit)

        async def work(conn: AsyncConnection):
            total = (await conn.execute(count_stmt)).scalar_one()
            rows = (await conn.execute(page_stmt)).mappings().all()
            return rows, total

        rows, total = await self._run(work)
        return [self._to_model(row) for row in rows], total


def create_sql_stores(
    engine: AsyncEngine,
    timeout_seconds: float = 3.0,
    clock: Clock = utc_now,
) -> tuple[SqlVersionedStore[Goal], SqlVersionedStore[GoalProgress]]:
    """Build the goal store and the progress store over one engine."""
    goal_store = SqlVersionedStore(engine, goals_table, Goal, timeout_seconds, clock)
    progress_store = SqlVersionedStore(engine, goal_progress_table, GoalProgress, timeout_seconds, clock)
    return goal_store, progress_store
