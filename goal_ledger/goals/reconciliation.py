"""
Goal Reconciliation

Keeps a goal's derived fields (current amount, status) consistent with its
progress ledger after any ledger mutation.

One pass:
1. Re-read the goal fresh (a version held from before the ledger write is
   never reused)
2. List the goal's non-deleted entries and sum them
3. Derive the status
4. CAS-update the goal with the new current amount and status

A pass that loses the CAS race is thrown away and re-run from step 1, up to
the configured attempt budget; only then is a ConflictError surfaced.
Every other error propagates on first occurrence.

A pass that finds the goal already consistent writes nothing, so running
reconciliation twice with no ledger change in between is a no-op.

The ledger write that triggered reconciliation is committed on its own.
If reconciliation fails, the entry stays and the goal's derived fields are
stale until the next successful pass.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from tenacity.wait import wait_base

from goal_ledger.audit import AuditLogger
from goal_ledger.clock import Clock, utc_now
from goal_ledger.goals.ledger import ProgressLedger
from goal_ledger.goals.status import GoalStatusEngine
from goal_ledger.models.goal import Goal
from goal_ledger.services.storage import (
    ConflictError,
    VersionedStore,
    retry_on_conflict,
)


@dataclass
class _Pass:
    """Result of one read-derive-write pass."""
    goal: Goal
    written: bool
    previous_status: str


class GoalReconciler:
    """Recomputes and persists a goal's derived fields from its ledger."""

    def __init__(
        self,
        goal_store: VersionedStore[Goal],
        ledger: ProgressLedger,
        status_engine: Optional[GoalStatusEngine] = None,
        clock: Clock = utc_now,
        max_attempts: int = 5,
        wait: Optional[wait_base] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._goals = goal_store
        self._ledger = ledger
        self._engine = status_engine or GoalStatusEngine()
        self._clock = clock
        self._max_attempts = max_attempts
        self._wait = wait
        self._audit_logger = audit_logger or AuditLogger()

    async def _reconcile_once(self, goal_id: int, owner_id: int) -> _Pass:
        goal = await self._goals.get(goal_id, owner_id=owner_id)
        entries = await self._ledger.list_by_goal(goal_id, owner_id)

        total = self._ledger.sum(entries)
        status = self._engine.derive_for(goal, total, self._clock())

        if goal.current_amount == total and goal.status == status:
            return _Pass(goal=goal, written=False, previous_status=goal.status.value)

        updated = goal.model_copy(update={"current_amount": total, "status": status})
        updated.version = await self._goals.update(updated)
        return _Pass(goal=updated, written=True, previous_status=goal.status.value)

    async def reconcile(
        self,
        goal_id: int,
        owner_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> Goal:
        """
        Bring the goal's current amount and status in line with its ledger.

        Returns:
            The goal as persisted after the successful pass

        Raises:
            NotFoundError: Goal absent, deleted or not owned by owner_id
            ConflictError: Every attempt lost a version race
            TransientStoreError: A store call timed out or lost its connection
        """
        attempts = 0

        async def attempt() -> _Pass:
            nonlocal attempts
            attempts += 1
            return await self._reconcile_once(goal_id, owner_id)

        def on_conflict(attempt_number: int, error: ConflictError) -> None:
            self._audit_logger.log_reconciliation_conflict(
                goal_id=goal_id,
                attempt=attempt_number,
                max_attempts=self._max_attempts,
                correlation_id=correlation_id,
            )

        try:
            result = await retry_on_conflict(
                attempt,
                max_attempts=self._max_attempts,
                wait=self._wait,
                on_conflict=on_conflict,
            )
        except ConflictError as e:
            self._audit_logger.log_reconciliation_failed(goal_id, e, correlation_id)
            raise ConflictError(
                f"Goal {goal_id} could not be reconciled after {attempts} attempts; "
                "re-fetch the goal"
            ) from e
        except Exception as e:
            self._audit_logger.log_reconciliation_failed(goal_id, e, correlation_id)
            raise

        goal = result.goal
        if result.written and result.previous_status != goal.status.value:
            self._audit_logger.log_status_changed(
                goal_id=goal_id,
                previous=result.previous_status,
                current=goal.status.value,
                correlation_id=correlation_id,
            )
        self._audit_logger.log_goal_reconciled(
            goal_id=goal_id,
            current_amount=str(goal.current_amount),
            status=goal.status.value,
            version=goal.version,
            attempts=attempts,
            written=result.written,
            correlation_id=correlation_id,
        )
        return goal
