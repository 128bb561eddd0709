"""
Goal Status Engine

Derives a goal's status from its ledger total, target, deadline and the
clock. Pure computation: no store access, no suspension points.

Transition rules, evaluated from scratch on every pass:

1. current >= target            -> FINISHED (whatever the deadline or prior status)
2. past the deadline            -> FAILED
3. prior status FAILED          -> FAILED (only reaching the target lifts it)
4. otherwise the goal is open   -> PENDING while nothing has accumulated on a
                                   pending goal, IN_PROGRESS from then on

FINISHED is not terminal. A correcting negative entry that pulls the total
back below target re-opens the goal (or fails it, if the deadline has
passed), so status always matches the live ledger.

A deadline is the start of its day: an open goal below target fails once the
clock reaches the deadline date. This matches the installment projection,
which has nothing left to plan from the deadline day on.
"""

from datetime import date, datetime
from decimal import Decimal

from goal_ledger.models.goal import Goal, GoalStatus


class GoalStatusEngine:
    """The goal state machine."""

    @staticmethod
    def is_past_deadline(deadline: date, now: datetime) -> bool:
        return now.date() >= deadline

    def derive(
        self,
        current_amount: Decimal,
        target_amount: Decimal,
        deadline: date,
        now: datetime,
        prior_status: GoalStatus,
    ) -> GoalStatus:
        """Compute the status a goal must have given its live ledger total."""
        if current_amount >= target_amount:
            return GoalStatus.FINISHED

        if self.is_past_deadline(deadline, now):
            return GoalStatus.FAILED

        if prior_status == GoalStatus.FAILED:
            return GoalStatus.FAILED

        if prior_status == GoalStatus.PENDING and current_amount == 0:
            return GoalStatus.PENDING

        return GoalStatus.IN_PROGRESS

    def derive_for(self, goal: Goal, current_amount: Decimal, now: datetime) -> GoalStatus:
        """derive() with the goal's own target, deadline and prior status."""
        return self.derive(
            current_amount=current_amount,
            target_amount=goal.target_amount,
            deadline=goal.deadline,
            now=now,
            prior_status=goal.status,
        )

    def needs_failure_transition(self, goal: Goal, now: datetime) -> bool:
        """
        True when a stored goal is still open although its deadline passed
        below target, i.e. a read must materialise the FAILED transition.
        """
        return (
            goal.status.is_open
            and goal.current_amount < goal.target_amount
            and self.is_past_deadline(goal.deadline, now)
        )
