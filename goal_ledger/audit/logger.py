"""
Audit Logger

DESIGN DECISION: Every goal and ledger mutation is logged, and so is every
reconciliation pass, conflict retry and failure. This provides:
1. Complete traceability of derived fields
2. Debugging capability for concurrent writers
3. A record of each inconsistency window (ledger saved, goal stale)

The audit logger:
- Writes structured JSON through structlog
- Is observational only: it never changes control flow
- Supports correlation IDs to trace a ledger write and its reconciliation
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from goal_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at the given level."""
    logging.basicConfig(format="%(message)s", level=log_level)
    logging.getLogger().setLevel(log_level)


class AuditLogger:
    """
    Central audit logging service.

    Events are rendered as structured JSON log lines, severity routed.
    """

    def __init__(self, logger_name: str = "goal_ledger.audit"):
        self._logger = structlog.get_logger(logger_name)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event at the level matching its severity."""
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    def log_goal_created(
        self,
        goal_id: int,
        owner_id: int,
        name: str,
        target_amount: str,
        correlation_id: UUID,
    ) -> None:
        """Log goal creation."""
        self.log(AuditEventBuilder.goal_created(
            goal_id=goal_id,
            owner_id=owner_id,
            name=name,
            target_amount=target_amount,
            correlation_id=correlation_id,
        ))

    def log_goal_updated(
        self,
        goal_id: int,
        owner_id: int,
        changed_fields: list[str],
        version: int,
        correlation_id: UUID,
    ) -> None:
        """Log a direct goal edit."""
        self.log(AuditEventBuilder.goal_updated(
            goal_id=goal_id,
            owner_id=owner_id,
            changed_fields=changed_fields,
            version=version,
            correlation_id=correlation_id,
        ))

    def log_goal_deleted(
        self,
        goal_id: int,
        owner_id: int,
        correlation_id: UUID,
    ) -> None:
        """Log goal soft delete."""
        self.log(AuditEventBuilder.goal_deleted(
            goal_id=goal_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
        ))

    def log_progress_changed(
        self,
        event_type: AuditEventType,
        progress_id: int,
        goal_id: int,
        owner_id: int,
        amount: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log a ledger insert, update or delete."""
        self.log(AuditEventBuilder.progress_changed(
            event_type=event_type,
            progress_id=progress_id,
            goal_id=goal_id,
            owner_id=owner_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    def log_goal_reconciled(
        self,
        goal_id: int,
        current_amount: str,
        status: str,
        version: int,
        attempts: int,
        written: bool,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a completed reconciliation pass."""
        self.log(AuditEventBuilder.goal_reconciled(
            goal_id=goal_id,
            current_amount=current_amount,
            status=status,
            version=version,
            attempts=attempts,
            written=written,
            correlation_id=correlation_id,
        ))

    def log_status_changed(
        self,
        goal_id: int,
        previous: str,
        current: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a status transition."""
        self.log(AuditEventBuilder.status_changed(
            goal_id=goal_id,
            previous=previous,
            current=current,
            correlation_id=correlation_id,
        ))

    def log_reconciliation_conflict(
        self,
        goal_id: int,
        attempt: int,
        max_attempts: int,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a version conflict that is about to be retried."""
        self.log(AuditEventBuilder.reconciliation_conflict(
            goal_id=goal_id,
            attempt=attempt,
            max_attempts=max_attempts,
            correlation_id=correlation_id,
        ))

    def log_reconciliation_failed(
        self,
        goal_id: int,
        error: Exception,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a reconciliation that could not be completed."""
        self.log(AuditEventBuilder.reconciliation_failed(
            goal_id=goal_id,
            error_type=type(error).__name__,
            error_message=str(error),
            correlation_id=correlation_id,
        ))

    def log_deadline_expired(
        self,
        goal_id: int,
        deadline: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a lazy failure transition triggered by a read."""
        self.log(AuditEventBuilder.deadline_expired(
            goal_id=goal_id,
            deadline=deadline,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a service call and pass it through the ledger
    write and the reconciliation it triggers.
    """
    return uuid4()
