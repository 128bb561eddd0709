"""Input validation package."""

from goal_ledger.validation.validator import (
    GoalValidator,
    ValidationError,
    ensure_valid,
    to_decimal,
)

__all__ = ["GoalValidator", "ValidationError", "ensure_valid", "to_decimal"]
