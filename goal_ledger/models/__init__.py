"""
Data Models Package

This package contains all Pydantic models used in the Goal Ledger system.
All data flowing through the system must conform to these schemas.
"""

from goal_ledger.models.goal import (
    SORT_SAFELIST,
    Goal,
    GoalFilters,
    GoalProgress,
    GoalStatus,
    Installments,
    PageMetadata,
    ValidationIssue,
)
from goal_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Goal models
    "SORT_SAFELIST",
    "Goal",
    "GoalFilters",
    "GoalProgress",
    "GoalStatus",
    "Installments",
    "PageMetadata",
    "ValidationIssue",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
