"""
Main Orchestrator for Goal Ledger

This module ties together all the components and defines the operations
offered to the handler layer:

1. Goals: create, edit, delete, get (with lazy failure), list
2. Ledger: record, update, delete, get, list progress entries
3. Reconciliation of a goal's derived fields after every ledger mutation

DESIGN DECISION: The orchestrator enforces the boundaries:
- Ownership is resolved through the goal before any ledger entry is touched
- current_amount and status are never taken from the caller
- A ledger write is committed before reconciliation and is never rolled
  back if reconciliation fails; the failure is reported, not hidden
- Every step is audited under one correlation id
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from tenacity.wait import wait_base

from goal_ledger.audit import AuditLogger, configure_logging, create_correlation_id
from goal_ledger.clock import Clock, utc_now
from goal_ledger.config import Settings, get_settings
from goal_ledger.goals import (
    GoalReconciler,
    GoalStatusEngine,
    InstallmentProjector,
    ProgressLedger,
)
from goal_ledger.models.audit import AuditEventType
from goal_ledger.models.goal import (
    Goal,
    GoalFilters,
    GoalProgress,
    GoalStatus,
    PageMetadata,
)
from goal_ledger.services.storage import (
    ConflictError,
    InMemoryVersionedStore,
    NotFoundError,
    VersionedStore,
    conflict_backoff,
    create_engine_from_settings,
    create_schema,
    create_sql_stores,
    retry_on_conflict,
)
from goal_ledger.validation import GoalValidator, ensure_valid, to_decimal


class GoalService:
    """
    Goal and ledger operations for the handler layer.

    Every method takes the id of the already-authenticated caller. Records
    owned by someone else are reported exactly like missing ones.
    """

    def __init__(
        self,
        goal_store: VersionedStore[Goal],
        progress_store: VersionedStore[GoalProgress],
        clock: Clock = utc_now,
        validator: Optional[GoalValidator] = None,
        status_engine: Optional[GoalStatusEngine] = None,
        projector: Optional[InstallmentProjector] = None,
        audit_logger: Optional[AuditLogger] = None,
        max_attempts: int = 5,
        wait: Optional[wait_base] = None,
    ):
        self._goals = goal_store
        self._ledger = ProgressLedger(progress_store)
        self._clock = clock
        self._validator = validator or GoalValidator()
        self._default_page_size = self._validator.default_page_size
        self._engine = status_engine or GoalStatusEngine()
        self._projector = projector or InstallmentProjector()
        self._audit_logger = audit_logger or AuditLogger()
        self._max_attempts = max_attempts
        self._wait = wait
        self._reconciler = GoalReconciler(
            goal_store=goal_store,
            ledger=self._ledger,
            status_engine=self._engine,
            clock=clock,
            max_attempts=max_attempts,
            wait=wait,
            audit_logger=self._audit_logger,
        )

    def _with_installments(self, goal: Goal) -> Goal:
        goal.installments = self._projector.project_for(goal, self._clock())
        return goal

    async def _owned_entry(self, owner_id: int, progress_id: int) -> tuple[GoalProgress, Goal]:
        """Load a ledger entry and its goal, checking ownership transitively."""
        entry = await self._ledger.get(progress_id)
        try:
            goal = await self._goals.get(entry.goal_id, owner_id=owner_id)
        except NotFoundError as e:
            raise NotFoundError(f"Progress entry not found: {progress_id}") from e
        return entry, goal

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    async def create_goal(
        self,
        owner_id: int,
        name: Optional[str],
        description: Optional[str],
        color: Optional[str],
        target_amount: Any,
        deadline: Optional[date],
    ) -> Goal:
        """
        Create a goal: version 1, status PENDING, current amount 0.

        Raises:
            ValidationError: Missing or out-of-range input
            DuplicateError: The owner already has a live goal with this name
        """
        correlation_id = create_correlation_id()
        today = self._clock().date()

        ensure_valid(self._validator.validate_new_goal(
            name=name,
            description=description,
            color=color,
            target_amount=target_amount,
            deadline=deadline,
            today=today,
        ))

        goal = await self._goals.insert(Goal(
            owner_id=owner_id,
            name=name,
            description=description,
            color=color,
            target_amount=to_decimal(target_amount),
            deadline=deadline,
            current_amount=Decimal("0"),
            status=GoalStatus.PENDING,
        ))

        self._audit_logger.log_goal_created(
            goal_id=goal.id,
            owner_id=owner_id,
            name=goal.name,
            target_amount=str(goal.target_amount),
            correlation_id=correlation_id,
        )
        return self._with_installments(goal)

    async def update_goal(
        self,
        owner_id: int,
        goal_id: int,
        version: int,
        **changes: Any,
    ) -> Goal:
        """
        Directly edit a goal's name, description, color, target or deadline.

        The caller passes the version it read. A stale version is a
        ConflictError right away: the edit was decided on outdated data, so
        it is not retried on the caller's behalf.

        Raises:
            ValidationError: Unknown field or invalid value
            NotFoundError: Goal absent, deleted or not owned by owner_id
            ConflictError: version is not the goal's current version
            DuplicateError: Renamed onto another live goal's name
        """
        correlation_id = create_correlation_id()
        now = self._clock()

        ensure_valid(self._validator.validate_goal_changes(changes, now.date()))

        goal = await self._goals.get(goal_id, owner_id=owner_id)
        if goal.version != version:
            raise ConflictError(
                f"Goal {goal_id} is at version {goal.version}, edit was based on {version}"
            )

        for field in ("name", "description", "color"):
            if field in changes:
                changes[field] = changes[field].strip()
        if "target_amount" in changes:
            changes["target_amount"] = to_decimal(changes["target_amount"])
        edited = goal.model_copy(update=changes)

        # Moving the deadline or the target re-plans a failed goal
        prior_status = goal.status
        if prior_status == GoalStatus.FAILED and (
            edited.deadline != goal.deadline or edited.target_amount != goal.target_amount
        ):
            prior_status = GoalStatus.IN_PROGRESS
        edited.status = self._engine.derive(
            current_amount=edited.current_amount,
            target_amount=edited.target_amount,
            deadline=edited.deadline,
            now=now,
            prior_status=prior_status,
        )

        edited.version = await self._goals.update(edited)

        self._audit_logger.log_goal_updated(
            goal_id=goal_id,
            owner_id=owner_id,
            changed_fields=sorted(changes),
            version=edited.version,
            correlation_id=correlation_id,
        )
        if edited.status != goal.status:
            self._audit_logger.log_status_changed(
                goal_id=goal_id,
                previous=goal.status.value,
                current=edited.status.value,
                correlation_id=correlation_id,
            )
        return self._with_installments(edited)

    async def delete_goal(self, owner_id: int, goal_id: int) -> None:
        """Soft-delete a goal. Raises NotFoundError if there is nothing to delete."""
        correlation_id = create_correlation_id()
        await self._goals.soft_delete(goal_id, owner_id=owner_id)
        self._audit_logger.log_goal_deleted(goal_id, owner_id, correlation_id)

    async def get_goal(self, owner_id: int, goal_id: int) -> Goal:
        """
        Read a goal with its installment projection.

        An open goal read after its deadline, still below target, is
        reconciled on the spot so the FAILED transition is persisted lazily
        instead of by a background sweep.
        """
        goal = await self._goals.get(goal_id, owner_id=owner_id)

        if self._engine.needs_failure_transition(goal, self._clock()):
            correlation_id = create_correlation_id()
            self._audit_logger.log_deadline_expired(
                goal_id=goal_id,
                deadline=goal.deadline.isoformat(),
                correlation_id=correlation_id,
            )
            goal = await self._reconciler.reconcile(goal_id, owner_id, correlation_id)

        return self._with_installments(goal)

    async def list_goals(
        self,
        owner_id: int,
        filters: Optional[GoalFilters] = None,
    ) -> tuple[list[Goal], PageMetadata]:
        """
        List the owner's goals, one page at a time.

        Goals whose deadline passed while still open are shown as FAILED
        here without being written; the persisted transition happens on
        get_goal or the next reconciliation.
        """
        filters = filters or GoalFilters(page_size=self._default_page_size)
        ensure_valid(self._validator.validate_filters(filters.page, filters.page_size, filters.sort))

        goals, total = await self._goals.find(
            {"owner_id": owner_id},
            search={"name": filters.name},
            order_by=filters.order_by(),
            limit=filters.limit,
            offset=filters.offset,
        )

        now = self._clock()
        for goal in goals:
            if self._engine.needs_failure_transition(goal, now):
                goal.status = GoalStatus.FAILED
            self._with_installments(goal)

        return goals, PageMetadata.calculate(total, filters.page, filters.page_size)

    async def reconcile_goal(self, owner_id: int, goal_id: int) -> Goal:
        """Re-run reconciliation for a goal explicitly."""
        goal = await self._reconciler.reconcile(goal_id, owner_id, create_correlation_id())
        return self._with_installments(goal)

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def _reconcile_after_write(
        self,
        goal_id: int,
        owner_id: int,
        correlation_id: UUID,
    ) -> None:
        # Errors propagate unchanged; the ledger write already stands
        await self._reconciler.reconcile(goal_id, owner_id, correlation_id)

    async def record_progress(
        self,
        owner_id: int,
        goal_id: int,
        amount: Any,
        entry_date: Optional[date],
    ) -> GoalProgress:
        """
        Append a ledger entry to a goal and reconcile the goal.

        Raises:
            ValidationError: Missing, zero, sub-cent, oversized or badly dated amount
            NotFoundError: Goal absent, deleted or not owned by owner_id
            ConflictError: Reconciliation lost every version race. The entry
                IS saved; re-fetch the goal.
        """
        correlation_id = create_correlation_id()
        ensure_valid(self._validator.validate_progress(amount, entry_date, self._clock().date()))

        await self._goals.get(goal_id, owner_id=owner_id)
        entry = await self._ledger.insert(GoalProgress(
            goal_id=goal_id,
            amount=to_decimal(amount),
            entry_date=entry_date,
        ))

        self._audit_logger.log_progress_changed(
            event_type=AuditEventType.PROGRESS_RECORDED,
            progress_id=entry.id,
            goal_id=goal_id,
            owner_id=owner_id,
            amount=str(entry.amount),
            correlation_id=correlation_id,
        )
        await self._reconcile_after_write(goal_id, owner_id, correlation_id)
        return entry

    async def update_progress(
        self,
        owner_id: int,
        progress_id: int,
        amount: Any,
        entry_date: Optional[date],
        version: Optional[int] = None,
    ) -> GoalProgress:
        """
        Rewrite a ledger entry's amount and date, then reconcile its goal.

        With version given, the rewrite applies only to that version of the
        entry and a mismatch is a ConflictError. Without it the entry is
        re-read and rewritten under the conflict-retry budget.

        Raises:
            ValidationError, NotFoundError, ConflictError (as record_progress)
        """
        correlation_id = create_correlation_id()
        ensure_valid(self._validator.validate_progress(amount, entry_date, self._clock().date()))
        new_amount = to_decimal(amount)

        async def rewrite() -> GoalProgress:
            entry, _ = await self._owned_entry(owner_id, progress_id)
            if version is not None and entry.version != version:
                raise ConflictError(
                    f"Progress entry {progress_id} is at version {entry.version}, "
                    f"edit was based on {version}"
                )
            return await self._ledger.update(
                entry.model_copy(update={"amount": new_amount, "entry_date": entry_date})
            )

        if version is not None:
            entry = await rewrite()
        else:
            entry = await retry_on_conflict(
                rewrite,
                max_attempts=self._max_attempts,
                wait=self._wait,
            )

        self._audit_logger.log_progress_changed(
            event_type=AuditEventType.PROGRESS_UPDATED,
            progress_id=progress_id,
            goal_id=entry.goal_id,
            owner_id=owner_id,
            amount=str(entry.amount),
            correlation_id=correlation_id,
        )
        await self._reconcile_after_write(entry.goal_id, owner_id, correlation_id)
        return entry

    async def delete_progress(self, owner_id: int, progress_id: int) -> None:
        """
        Soft-delete a ledger entry, then reconcile its goal.

        Raises:
            NotFoundError: Entry absent, deleted or not owned by owner_id
            ConflictError: Reconciliation lost every version race (the
                entry IS deleted; re-fetch the goal)
        """
        correlation_id = create_correlation_id()
        entry, goal = await self._owned_entry(owner_id, progress_id)
        await self._ledger.delete(progress_id, goal.id)

        self._audit_logger.log_progress_changed(
            event_type=AuditEventType.PROGRESS_DELETED,
            progress_id=progress_id,
            goal_id=goal.id,
            owner_id=owner_id,
            amount=str(entry.amount),
            correlation_id=correlation_id,
        )
        await self._reconcile_after_write(goal.id, owner_id, correlation_id)

    async def get_progress(self, owner_id: int, progress_id: int) -> GoalProgress:
        entry, _ = await self._owned_entry(owner_id, progress_id)
        return entry

    async def list_progress(self, owner_id: int, goal_id: int) -> list[GoalProgress]:
        """A goal's live ledger entries, oldest first."""
        await self._goals.get(goal_id, owner_id=owner_id)
        return await self._ledger.list_by_goal(goal_id, owner_id)


def create_in_memory_service(
    clock: Clock = utc_now,
    settings: Optional[Settings] = None,
    **overrides: Any,
) -> GoalService:
    """GoalService over in-memory stores (tests and local experiments)."""
    settings = settings or get_settings()
    goal_store = InMemoryVersionedStore(unique_together=(("owner_id", "name"),), clock=clock)
    progress_store = InMemoryVersionedStore(clock=clock)
    reconciliation = settings.reconciliation
    options = {
        "clock": clock,
        "validator": GoalValidator(settings.app),
        "max_attempts": reconciliation.max_attempts,
        "wait": conflict_backoff(
            reconciliation.backoff_min_seconds,
            reconciliation.backoff_max_seconds,
        ),
    }
    options.update(overrides)
    return GoalService(goal_store, progress_store, **options)


async def create_app_components(
    use_database: bool = True,
    clock: Clock = utc_now,
    settings: Optional[Settings] = None,
):
    """
    Factory function to create all application components.

    Args:
        use_database: Whether to use the configured SQL database.
                      Set to False for in-memory storage.
        clock: Clock source injected into every time-dependent component
        settings: Settings to use instead of the cached ones

    Returns:
        (goal_service, engine) - engine is None for in-memory storage and
        must be disposed by the caller otherwise
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)

    if not use_database:
        return create_in_memory_service(clock=clock, settings=settings), None

    store_settings = settings.store
    engine = create_engine_from_settings(store_settings)
    await create_schema(engine)
    goal_store, progress_store = create_sql_stores(
        engine,
        timeout_seconds=store_settings.operation_timeout_seconds,
        clock=clock,
    )

    reconciliation = settings.reconciliation
    service = GoalService(
        goal_store,
        progress_store,
        clock=clock,
        validator=GoalValidator(settings.app),
        max_attempts=reconciliation.max_attempts,
        wait=conflict_backoff(
            reconciliation.backoff_min_seconds,
            reconciliation.backoff_max_seconds,
        ),
    )
    return service, engine
