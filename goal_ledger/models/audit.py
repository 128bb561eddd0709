"""
Audit Models for Goal Ledger

Every goal and ledger mutation, and every reconciliation pass, is logged.
This provides:
1. Traceability of how a goal reached its current amount and status
2. Visibility into version conflicts and retries
3. Evidence for the inconsistency window when reconciliation fails

DESIGN DECISION: Audit events are observations. Emitting one never changes
the outcome of the operation it describes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Goals
    GOAL_CREATED = "goal_created"
    GOAL_UPDATED = "goal_updated"
    GOAL_DELETED = "goal_deleted"

    # Ledger
    PROGRESS_RECORDED = "progress_recorded"
    PROGRESS_UPDATED = "progress_updated"
    PROGRESS_DELETED = "progress_deleted"

    # Reconciliation
    GOAL_RECONCILED = "goal_reconciled"
    GOAL_STATUS_CHANGED = "goal_status_changed"
    RECONCILIATION_CONFLICT = "reconciliation_conflict"
    RECONCILIATION_FAILED = "reconciliation_failed"
    DEADLINE_EXPIRED = "deadline_expired"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity ('goal' or 'goal_progress')"
    )
    entity_id: Optional[int] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    owner_id: Optional[int] = Field(
        default=None,
        description="Owner on whose behalf the action ran"
    )

    # Correlation - ties a ledger write to the reconciliation it triggered
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events within one logical operation"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "owner_id": self.owner_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.goal_created(goal_id, owner_id, name, correlation_id)
        event = AuditEventBuilder.goal_reconciled(goal_id, ..., correlation_id)
    """

    @staticmethod
    def goal_created(
        goal_id: int,
        owner_id: int,
        name: str,
        target_amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CREATED,
            entity_type="goal",
            entity_id=goal_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Goal created: {name}",
            details={
                "name": name,
                "target_amount": target_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def goal_updated(
        goal_id: int,
        owner_id: int,
        changed_fields: list[str],
        version: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_UPDATED,
            entity_type="goal",
            entity_id=goal_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Goal edited ({', '.join(changed_fields) or 'no fields'})",
            details={
                "changed_fields": changed_fields,
                "version": version,
            },
            is_user_action=True,
        )

    @staticmethod
    def goal_deleted(
        goal_id: int,
        owner_id: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_DELETED,
            entity_type="goal",
            entity_id=goal_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description="Goal deleted",
            is_user_action=True,
        )

    @staticmethod
    def progress_changed(
        event_type: AuditEventType,
        progress_id: int,
        goal_id: int,
        owner_id: int,
        amount: Optional[str],
        correlation_id: UUID
    ) -> AuditEvent:
        verb = {
            AuditEventType.PROGRESS_RECORDED: "recorded",
            AuditEventType.PROGRESS_UPDATED: "updated",
            AuditEventType.PROGRESS_DELETED: "deleted",
        }[event_type]
        return AuditEvent(
            event_type=event_type,
            entity_type="goal_progress",
            entity_id=progress_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Progress entry {verb} for goal {goal_id}",
            details={
                "goal_id": goal_id,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def goal_reconciled(
        goal_id: int,
        current_amount: str,
        status: str,
        version: int,
        attempts: int,
        written: bool,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_RECONCILED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=(
                f"Goal reconciled: current={current_amount} status={status}"
                if written else "Goal already consistent with its ledger"
            ),
            details={
                "current_amount": current_amount,
                "status": status,
                "version": version,
                "attempts": attempts,
                "written": written,
            },
        )

    @staticmethod
    def status_changed(
        goal_id: int,
        previous: str,
        current: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_STATUS_CHANGED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal status changed: {previous} -> {current}",
            details={
                "previous": previous,
                "current": current,
            },
        )

    @staticmethod
    def reconciliation_conflict(
        goal_id: int,
        attempt: int,
        max_attempts: int,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Version conflict on attempt {attempt}/{max_attempts}, retrying",
            details={
                "attempt": attempt,
                "max_attempts": max_attempts,
            },
        )

    @staticmethod
    def reconciliation_failed(
        goal_id: int,
        error_type: str,
        error_message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description="Goal derived fields are stale until the next reconciliation",
            error_code=error_type,
            error_message=error_message,
        )

    @staticmethod
    def deadline_expired(
        goal_id: int,
        deadline: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEADLINE_EXPIRED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Open goal read after its deadline ({deadline})",
            details={
                "deadline": deadline,
            },
        )
