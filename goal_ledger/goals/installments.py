"""
Installment Projection

Suggests a monthly contribution that would meet a goal by its deadline.
Advisory output only: nothing here is persisted or fed back into a goal.
"""

from datetime import date, datetime
from decimal import Decimal

from goal_ledger.models.goal import Goal, Installments


class InstallmentProjector:
    """Splits the remaining amount evenly over the whole months left."""

    @staticmethod
    def months_between(start: date, end: date) -> int:
        """Calendar months from start to end; days of month are ignored."""
        return (end.year - start.year) * 12 + (end.month - start.month)

    def project(
        self,
        target_amount: Decimal,
        current_amount: Decimal,
        deadline: date,
        now: datetime,
    ) -> Installments:
        """
        Project the installment plan.

        Returns an empty projection when the deadline is today or earlier,
        when less than one calendar month is left, or when the target is
        already met.
        """
        today = now.date()
        if deadline <= today:
            return Installments()

        quantity = self.months_between(today, deadline)
        if quantity <= 0:
            return Installments()

        remaining = target_amount - current_amount
        if remaining <= 0:
            return Installments()

        return Installments(amount=remaining / quantity, quantity=quantity)

    def project_for(self, goal: Goal, now: datetime) -> Installments:
        return self.project(goal.target_amount, goal.current_amount, goal.deadline, now)
