"""
Data Models Package

This package contains all Pydantic models used by the scheduler.
All data flowing between the store and the batch run must conform to these schemas.
"""

from recurring_ledger.models.rule import (
    BatchRunResult,
    Frequency,
    LedgerEntry,
    RecurringRule,
    RuleOutcome,
    RuleOutcomeStatus,
    RuleUpdate,
    TransactionType,
    UnreadableRule,
)
from recurring_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Rule models
    "BatchRunResult",
    "Frequency",
    "LedgerEntry",
    "RecurringRule",
    "RuleOutcome",
    "RuleOutcomeStatus",
    "RuleUpdate",
    "TransactionType",
    "UnreadableRule",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
