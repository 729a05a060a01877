"""
Audit Models for the Recurring Ledger Scheduler

Every batch run leaves a trail of structured events:
1. Whether the trigger was accepted
2. Which rules were due
3. What happened to each rule (fired, deactivated, failed)
4. The aggregate result

All events of one run share the run id as their correlation id, so a
single run can be reconstructed from the log.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Trigger
    TRIGGER_REJECTED = "trigger_rejected"

    # Run lifecycle
    RUN_STARTED = "run_started"
    RULES_FETCHED = "rules_fetched"
    FETCH_FAILED = "fetch_failed"
    RUN_COMPLETED = "run_completed"

    # Per-rule
    LEDGER_ENTRY_WRITTEN = "ledger_entry_written"
    LEDGER_WRITE_FAILED = "ledger_write_failed"
    RULE_ADVANCED = "rule_advanced"
    RULE_DEACTIVATED = "rule_deactivated"
    RULE_ADVANCE_FAILED = "rule_advance_failed"
    RULE_INVALID = "rule_invalid"
    RULE_UNREADABLE = "rule_unreadable"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="'run', 'rule' or 'ledger_entry'"
    )
    entity_id: Optional[UUID] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Run id shared by every event of one batch run"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.run_started(run_id, run_date)
        event = AuditEventBuilder.rule_advanced(rule_id, old, new, run_id)
    """

    @staticmethod
    def trigger_rejected(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRIGGER_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="run",
            description="Unauthorized batch trigger attempt",
            details={"reason": reason},
        )

    @staticmethod
    def run_started(run_id: UUID, run_date: date) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_STARTED,
            entity_type="run",
            entity_id=run_id,
            correlation_id=run_id,
            description=f"Processing recurring rules due on or before {run_date.isoformat()}",
            details={"run_date": run_date.isoformat()},
        )

    @staticmethod
    def rules_fetched(run_id: UUID, rule_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULES_FETCHED,
            entity_type="run",
            entity_id=run_id,
            correlation_id=run_id,
            description=f"Found {rule_count} due rule(s)",
            details={"rule_count": rule_count},
        )

    @staticmethod
    def fetch_failed(run_id: UUID, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FETCH_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="run",
            entity_id=run_id,
            correlation_id=run_id,
            description="Could not fetch due rules; run aborted",
            error_message=error_message,
        )

    @staticmethod
    def ledger_entry_written(
        rule_id: UUID,
        entry_id: UUID,
        kind: str,
        entry_date: date,
        run_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_ENTRY_WRITTEN,
            entity_type="ledger_entry",
            entity_id=entry_id,
            correlation_id=run_id,
            description=f"Inserted {kind} dated {entry_date.isoformat()}",
            details={
                "rule_id": str(rule_id),
                "kind": kind,
                "entry_date": entry_date.isoformat(),
            },
        )

    @staticmethod
    def ledger_write_failed(
        rule_id: UUID,
        kind: str,
        error_message: str,
        run_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=run_id,
            description=f"Failed to insert {kind}; rule left due",
            details={"kind": kind},
            error_message=error_message,
        )

    @staticmethod
    def rule_advanced(
        rule_id: UUID,
        previous_due_date: date,
        next_due_date: date,
        run_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_ADVANCED,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=run_id,
            description=f"next_due_date moved to {next_due_date.isoformat()}",
            details={
                "previous_due_date": previous_due_date.isoformat(),
                "next_due_date": next_due_date.isoformat(),
            },
        )

    @staticmethod
    def rule_deactivated(
        rule_id: UUID,
        last_due_date: date,
        end_date: date,
        run_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_DEACTIVATED,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=run_id,
            description="Rule reached its end date and was deactivated",
            details={
                "last_due_date": last_due_date.isoformat(),
                "end_date": end_date.isoformat(),
            },
        )

    @staticmethod
    def rule_advance_failed(
        rule_id: UUID,
        update: dict,
        error_message: str,
        run_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_ADVANCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=run_id,
            description="Entry written but schedule update failed; needs manual review",
            details={"update": update},
            error_message=error_message,
        )

    @staticmethod
    def rule_invalid(
        rule_id: UUID,
        frequency: str,
        error_message: str,
        run_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_INVALID,
            severity=AuditSeverity.ERROR,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=run_id,
            description="Rule skipped: schedule could not be computed",
            details={"frequency": frequency},
            error_message=error_message,
        )

    @staticmethod
    def rule_unreadable(
        row_ref: str,
        rule_id: Optional[UUID],
        error_message: str,
        run_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_UNREADABLE,
            severity=AuditSeverity.ERROR,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=run_id,
            description="Rule skipped: stored row could not be parsed",
            details={"row": row_ref},
            error_message=error_message,
        )

    @staticmethod
    def run_completed(
        run_id: UUID,
        processed: int,
        failed: list[UUID],
        advance_failed: list[UUID],
        unreadable: Optional[list[str]] = None,
    ) -> AuditEvent:
        unreadable = unreadable or []
        if failed or advance_failed or unreadable:
            severity = AuditSeverity.WARNING
        else:
            severity = AuditSeverity.INFO
        return AuditEvent(
            event_type=AuditEventType.RUN_COMPLETED,
            severity=severity,
            entity_type="run",
            entity_id=run_id,
            correlation_id=run_id,
            description=f"Processing complete. Processed: {processed}",
            details={
                "processed": processed,
                "failed_rule_ids": [str(r) for r in failed],
                "advance_failed_rule_ids": [str(r) for r in advance_failed],
                "unreadable_rows": unreadable,
            },
        )
