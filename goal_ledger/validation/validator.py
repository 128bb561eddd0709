"""
Input Validation

DESIGN DECISION: Inputs are checked before anything touches the store, and
every problem found is reported at once rather than one per round trip.

Checks cover:
- Required field presence
- Length bounds on free text
- Amount ranges (goal targets are positive; progress entries are signed
  but never zero)
- Amount precision (cents; nothing finer is stored)
- Date sanity (deadlines in the future, progress not dated far ahead)
- Listing filters (paging bounds, sort safelist)

IMPORTANT: Validation NEVER silently fixes input.
Whatever it rejects is reported with the field it belongs to.
"""

from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from goal_ledger.config import AppSettings, get_settings
from goal_ledger.models.goal import SORT_SAFELIST, ValidationIssue


EDITABLE_GOAL_FIELDS = ("name", "description", "color", "target_amount", "deadline")

# Amounts are stored with two decimal places
CENT = Decimal("0.01")


class ValidationError(Exception):
    """Malformed input. Carries every issue that was found."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        summary = "; ".join(f"{issue.field}: {issue.message}" for issue in issues)
        super().__init__(f"Invalid input: {summary}")

    @property
    def fields(self) -> dict[str, str]:
        """field -> first message, the shape handler layers report back."""
        result: dict[str, str] = {}
        for issue in self.issues:
            result.setdefault(issue.field, issue.message)
        return result


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a numeric input to Decimal; None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def ensure_valid(issues: list[ValidationIssue]) -> None:
    """Raise ValidationError if any error-level issue was found."""
    errors = [issue for issue in issues if issue.severity == "error"]
    if errors:
        raise ValidationError(errors)


class GoalValidator:
    """Validates goal, progress and listing input against configured bounds."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    @property
    def default_page_size(self) -> int:
        return self._settings.default_page_size

    @property
    def _max_amount(self) -> Decimal:
        return Decimal(str(self._settings.max_target_amount))

    @staticmethod
    def _in_cents(value: Decimal) -> bool:
        return value == value.quantize(CENT)

    def _check_text(
        self,
        issues: list[ValidationIssue],
        field: str,
        value: Optional[str],
        max_length: int,
    ) -> None:
        if value is None or not value.strip():
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message="must be provided",
            ))
        elif len(value.strip().encode("utf-8")) > max_length:
            issues.append(ValidationIssue(
                field=field,
                issue_type="too_long",
                message=f"must not be more than {max_length} bytes long",
            ))

    def _check_target(self, issues: list[ValidationIssue], target_amount: Any) -> None:
        target = to_decimal(target_amount)
        if target_amount is None:
            issues.append(ValidationIssue(
                field="target_amount",
                issue_type="missing",
                message="must be provided",
            ))
        elif target is None:
            issues.append(ValidationIssue(
                field="target_amount",
                issue_type="invalid_format",
                message="must be a number",
            ))
        elif target <= 0:
            issues.append(ValidationIssue(
                field="target_amount",
                issue_type="out_of_range",
                message="must be greater than zero",
            ))
        elif target > self._max_amount:
            issues.append(ValidationIssue(
                field="target_amount",
                issue_type="out_of_range",
                message=f"must not exceed {self._settings.max_target_amount:,.2f}",
                suggested_fix="Split very large targets into several goals",
            ))
        elif not self._in_cents(target):
            issues.append(ValidationIssue(
                field="target_amount",
                issue_type="out_of_range",
                message="must not have more than 2 decimal places",
            ))

    def _check_deadline(
        self,
        issues: list[ValidationIssue],
        deadline: Optional[date],
        today: date,
    ) -> None:
        if deadline is None:
            issues.append(ValidationIssue(
                field="deadline",
                issue_type="missing",
                message="must be provided",
            ))
        elif deadline <= today:
            issues.append(ValidationIssue(
                field="deadline",
                issue_type="out_of_range",
                message=f"must be later than today ({deadline})",
            ))

    def validate_new_goal(
        self,
        name: Optional[str],
        description: Optional[str],
        color: Optional[str],
        target_amount: Any,
        deadline: Optional[date],
        today: date,
    ) -> list[ValidationIssue]:
        """Check every field of a goal about to be created."""
        issues: list[ValidationIssue] = []
        self._check_text(issues, "name", name, self._settings.max_name_length)
        self._check_text(issues, "description", description, self._settings.max_description_length)
        self._check_text(issues, "color", color, self._settings.max_color_length)
        self._check_target(issues, target_amount)
        self._check_deadline(issues, deadline, today)
        return issues

    def validate_goal_changes(self, changes: dict[str, Any], today: date) -> list[ValidationIssue]:
        """Check only the fields a direct goal edit supplies."""
        issues: list[ValidationIssue] = []
        for field in sorted(set(changes) - set(EDITABLE_GOAL_FIELDS)):
            issues.append(ValidationIssue(
                field=field,
                issue_type="not_editable",
                message="cannot be edited directly",
            ))
        bounds = {
            "name": self._settings.max_name_length,
            "description": self._settings.max_description_length,
            "color": self._settings.max_color_length,
        }
        for field, max_length in bounds.items():
            if field in changes:
                self._check_text(issues, field, changes[field], max_length)
        if "target_amount" in changes:
            self._check_target(issues, changes["target_amount"])
        if "deadline" in changes:
            self._check_deadline(issues, changes["deadline"], today)
        return issues

    def validate_progress(
        self,
        amount: Any,
        entry_date: Optional[date],
        today: date,
    ) -> list[ValidationIssue]:
        """Check a progress entry about to be recorded or rewritten."""
        issues: list[ValidationIssue] = []

        value = to_decimal(amount)
        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="must be provided",
            ))
        elif value is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_format",
                message="must be a number",
            ))
        elif value == 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message="must not be zero",
                suggested_fix="Use a negative amount to record a withdrawal",
            ))
        elif abs(value) > self._max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message=f"must not exceed {self._settings.max_target_amount:,.2f} either way",
            ))
        elif not self._in_cents(value):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message="must not have more than 2 decimal places",
            ))

        if entry_date is None:
            issues.append(ValidationIssue(
                field="entry_date",
                issue_type="missing",
                message="must be provided",
            ))
        else:
            max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
            if entry_date > max_future_date:
                issues.append(ValidationIssue(
                    field="entry_date",
                    issue_type="future_date",
                    message=f"must not be later than {max_future_date}",
                ))

        return issues

    def validate_filters(self, page: int, page_size: int, sort: str) -> list[ValidationIssue]:
        """Check listing parameters."""
        issues: list[ValidationIssue] = []
        if page < 1:
            issues.append(ValidationIssue(
                field="page",
                issue_type="out_of_range",
                message="must be greater than zero",
            ))
        elif page > 10_000_000:
            issues.append(ValidationIssue(
                field="page",
                issue_type="out_of_range",
                message="must be a maximum of 10 million",
            ))
        if page_size < 1:
            issues.append(ValidationIssue(
                field="page_size",
                issue_type="out_of_range",
                message="must be greater than zero",
            ))
        elif page_size > self._settings.max_page_size:
            issues.append(ValidationIssue(
                field="page_size",
                issue_type="out_of_range",
                message=f"must be a maximum of {self._settings.max_page_size}",
            ))
        if sort not in SORT_SAFELIST:
            issues.append(ValidationIssue(
                field="sort",
                issue_type="invalid_value",
                message="invalid sort value",
                suggested_fix=f"Use one of: {', '.join(SORT_SAFELIST)}",
            ))
        return issues
