"""
Audit Logger

DESIGN DECISION: Every significant step of a batch run is logged.
This provides:
1. Complete traceability of what each run did to each rule
2. A record of rules that need manual review (advance failures)
3. Visibility into rejected trigger attempts

The audit logger:
- Is async so it can sit inside the async batch loop
- Never raises: logging must not change the outcome of a run
- Tags every event of a run with the run id as correlation id
"""

from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from recurring_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


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


class AuditLogger:
    """
    Central audit logging service.

    Writes every event to the structured local log. Events are also
    kept on the instance (bounded) so callers can inspect the events
    of the most recent runs.
    """

    def __init__(self, max_events: int = 1000):
        self._logger = structlog.get_logger("recurring_ledger.audit")
        self._max_events = max_events
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the event was logged.
        """
        self._events.append(event)
        if len(self._events) > self._max_events:
            del self._events[: len(self._events) - self._max_events]

        log_dict = event.to_log_dict()
        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            return False
        return True

    async def log_trigger_rejected(self, reason: str) -> None:
        """Log an unauthorized trigger attempt."""
        await self.log(AuditEventBuilder.trigger_rejected(reason=reason))

    async def log_run_started(self, run_id: UUID, run_date: date) -> None:
        await self.log(AuditEventBuilder.run_started(run_id=run_id, run_date=run_date))

    async def log_rules_fetched(self, run_id: UUID, rule_count: int) -> None:
        await self.log(AuditEventBuilder.rules_fetched(run_id=run_id, rule_count=rule_count))

    async def log_fetch_failed(self, run_id: UUID, error_message: str) -> None:
        await self.log(AuditEventBuilder.fetch_failed(run_id=run_id, error_message=error_message))

    async def log_ledger_entry_written(
        self,
        rule_id: UUID,
        entry_id: UUID,
        kind: str,
        entry_date: date,
        run_id: UUID,
    ) -> None:
        event = AuditEventBuilder.ledger_entry_written(
            rule_id=rule_id,
            entry_id=entry_id,
            kind=kind,
            entry_date=entry_date,
            run_id=run_id,
        )
        await self.log(event)

    async def log_ledger_write_failed(
        self,
        rule_id: UUID,
        kind: str,
        error_message: str,
        run_id: UUID,
    ) -> None:
        event = AuditEventBuilder.ledger_write_failed(
            rule_id=rule_id,
            kind=kind,
            error_message=error_message,
            run_id=run_id,
        )
        await self.log(event)

    async def log_rule_advanced(
        self,
        rule_id: UUID,
        previous_due_date: date,
        next_due_date: date,
        run_id: UUID,
    ) -> None:
        event = AuditEventBuilder.rule_advanced(
            rule_id=rule_id,
            previous_due_date=previous_due_date,
            next_due_date=next_due_date,
            run_id=run_id,
        )
        await self.log(event)

    async def log_rule_deactivated(
        self,
        rule_id: UUID,
        last_due_date: date,
        end_date: date,
        run_id: UUID,
    ) -> None:
        event = AuditEventBuilder.rule_deactivated(
            rule_id=rule_id,
            last_due_date=last_due_date,
            end_date=end_date,
            run_id=run_id,
        )
        await self.log(event)

    async def log_rule_advance_failed(
        self,
        rule_id: UUID,
        update: dict,
        error_message: str,
        run_id: UUID,
    ) -> None:
        event = AuditEventBuilder.rule_advance_failed(
            rule_id=rule_id,
            update=update,
            error_message=error_message,
            run_id=run_id,
        )
        await self.log(event)

    async def log_rule_invalid(
        self,
        rule_id: UUID,
        frequency: str,
        error_message: str,
        run_id: UUID,
    ) -> None:
        event = AuditEventBuilder.rule_invalid(
            rule_id=rule_id,
            frequency=frequency,
            error_message=error_message,
            run_id=run_id,
        )
        await self.log(event)

    async def log_rule_unreadable(
        self,
        row_ref: str,
        rule_id: Optional[UUID],
        error_message: str,
        run_id: UUID,
    ) -> None:
        event = AuditEventBuilder.rule_unreadable(
            row_ref=row_ref,
            rule_id=rule_id,
            error_message=error_message,
            run_id=run_id,
        )
        await self.log(event)

    async def log_run_completed(
        self,
        run_id: UUID,
        processed: int,
        failed: list[UUID],
        advance_failed: list[UUID],
        unreadable: Optional[list[str]] = None,
    ) -> None:
        event = AuditEventBuilder.run_completed(
            run_id=run_id,
            processed=processed,
            failed=failed,
            advance_failed=advance_failed,
            unreadable=unreadable,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Used as the run id at the start of each batch run.
    """
    return uuid4()
