"""Goal engines: status state machine, installments, ledger and reconciliation."""

from goal_ledger.goals.installments import InstallmentProjector
from goal_ledger.goals.ledger import ProgressLedger
from goal_ledger.goals.reconciliation import GoalReconciler
from goal_ledger.goals.status import GoalStatusEngine

__all__ = [
    "GoalReconciler",
    "GoalStatusEngine",
    "InstallmentProjector",
    "ProgressLedger",
]
