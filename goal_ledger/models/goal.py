"""
Core Data Models for Goal Ledger

These models define the schemas for goals, their progress ledger and the
advisory values derived from them.

DESIGN DECISION: Every persisted entity carries the same three fields
(id, version, deleted). The storage layer relies only on those three, so a
goal and a ledger entry share the optimistic-concurrency machinery without
sharing a base class.

Amounts are Decimal end to end; floats never touch money.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class GoalStatus(str, Enum):
    """
    Goal lifecycle status.

    CRITICAL: Status is DERIVED from the ledger, target, deadline and clock.
    Clients never set it directly.
    """
    PENDING = "pending"            # Created, nothing recorded yet
    IN_PROGRESS = "in_progress"    # Open, some progress recorded
    FINISHED = "finished"          # Ledger total reached the target
    FAILED = "failed"              # Deadline passed below target

    @property
    def is_open(self) -> bool:
        """Pending and in-progress goals are still accepting contributions."""
        return self in (GoalStatus.PENDING, GoalStatus.IN_PROGRESS)


# =============================================================================
# ADVISORY MODELS
# =============================================================================

class Installments(BaseModel):
    """
    Suggested periodic contribution to meet a goal by its deadline.

    Advisory only: never persisted and never fed back into the goal.
    An empty projection has amount 0 and quantity 0.
    """

    amount: Decimal = Field(
        default=Decimal("0"),
        description="Suggested contribution per month"
    )
    quantity: int = Field(
        default=0,
        ge=0,
        description="Number of whole months left until the deadline"
    )

    @property
    def is_empty(self) -> bool:
        return self.quantity == 0


# =============================================================================
# CORE GOAL MODELS
# =============================================================================

class Goal(BaseModel):
    """
    A named savings/spending target owned by exactly one user.

    current_amount and status are derived fields: they are recomputed from
    the progress ledger by the reconciler and written with a version check.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity and concurrency token
    id: Optional[int] = Field(
        default=None,
        description="Store-assigned identifier"
    )
    version: int = Field(
        default=1,
        ge=1,
        description="Monotonic version counter; the only concurrency token"
    )
    deleted: bool = False
    created_at: Optional[datetime] = None

    # Ownership (a foreign key, not an object reference)
    owner_id: int = Field(
        ...,
        description="ID of the owning user"
    )

    # User-editable fields
    name: str = Field(
        ...,
        min_length=1,
        description="Goal name, unique per owner"
    )
    description: str = Field(
        ...,
        min_length=1,
        description="What the goal is for"
    )
    color: str = Field(
        ...,
        min_length=1,
        description="Color tag used by clients"
    )
    target_amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount that finishes the goal"
    )
    deadline: date = Field(
        ...,
        description="Last day on which the goal can still be reached"
    )

    # Derived fields
    current_amount: Decimal = Field(
        default=Decimal("0"),
        description="Sum of all non-deleted ledger entries (signed)"
    )
    status: GoalStatus = Field(
        default=GoalStatus.PENDING,
        description="Derived lifecycle status"
    )

    # Attached on read, excluded from persistence
    installments: Optional[Installments] = Field(
        default=None,
        exclude=True,
        description="Advisory installment projection"
    )

    @property
    def remaining_amount(self) -> Decimal:
        """Amount still missing to reach the target (never negative)."""
        return max(self.target_amount - self.current_amount, Decimal("0"))


class GoalProgress(BaseModel):
    """
    One ledger entry: a dated contribution toward a goal.

    Amounts are signed - a negative entry is a withdrawal or a correction.
    Ownership is transitive through the goal; entries carry no owner field.
    """

    id: Optional[int] = None
    version: int = Field(default=1, ge=1)
    deleted: bool = False
    created_at: Optional[datetime] = None

    goal_id: int = Field(
        ...,
        description="Goal this entry contributes to"
    )
    amount: Decimal = Field(
        ...,
        description="Signed contribution amount"
    )
    entry_date: date = Field(
        ...,
        description="Date the contribution was made"
    )

    @field_validator('amount')
    @classmethod
    def reject_zero_amount(cls, v: Decimal) -> Decimal:
        """A zero entry would not move the ledger at all."""
        if v == 0:
            raise ValueError("Progress amount cannot be zero")
        return v


# =============================================================================
# LISTING MODELS
# =============================================================================

SORT_SAFELIST = (
    "id", "name", "deadline", "created_at",
    "-id", "-name", "-deadline", "-created_at",
)


class GoalFilters(BaseModel):
    """Filtering, paging and sorting for goal listings."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        default="",
        description="Case-insensitive substring of the goal name; empty matches all"
    )
    page: int = Field(default=1)
    page_size: int = Field(default=20)
    sort: str = Field(
        default="id",
        description="Sort column, '-' prefix for descending"
    )

    @property
    def sort_column(self) -> str:
        return self.sort.lstrip("-")

    @property
    def sort_descending(self) -> bool:
        return self.sort.startswith("-")

    @property
    def limit(self) -> int:
        return self.page_size

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def order_by(self) -> tuple[str, ...]:
        """Sort keys for the store, with id as a stable tie-breaker."""
        if self.sort_column == "id":
            return (self.sort,)
        return (self.sort, "id")


class PageMetadata(BaseModel):
    """Pagination metadata returned alongside a listing."""

    current_page: int = 0
    page_size: int = 0
    first_page: int = 0
    last_page: int = 0
    total_records: int = 0

    @classmethod
    def calculate(cls, total_records: int, page: int, page_size: int) -> 'PageMetadata':
        """Build metadata; an empty result set gets all-zero metadata."""
        if total_records == 0:
            return cls()
        return cls(
            current_page=page,
            page_size=page_size,
            first_page=1,
            last_page=(total_records + page_size - 1) // page_size,
            total_records=total_records,
        )


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'out_of_range', 'too_long')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )
