"""
Main Orchestrator for the Recurring Ledger Scheduler

This module ties together all the components and defines the batch
flow:
    fetch due rules → for each rule: compute next date → write entry →
    advance or deactivate rule → aggregate result

DESIGN DECISION: The orchestrator enforces the boundaries:
- A failed fetch aborts the run before anything is written
- One rule's failure never stops the others
- A rule is only advanced after its ledger entry is committed
- Every step is audited

OPERATIONAL REQUIREMENT: The scheduler takes no locks. Whatever
triggers it must guarantee that two runs never overlap, otherwise both
can select and fire the same due rule.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

import structlog

from recurring_ledger.audit import AuditLogger, create_correlation_id
from recurring_ledger.config import get_settings, validate_all_settings
from recurring_ledger.models.rule import (
    BatchRunResult,
    LedgerEntry,
    RecurringRule,
    RuleOutcome,
    RuleOutcomeStatus,
    RuleUpdate,
    UnreadableRule,
)
from recurring_ledger.schedule import CalculationError, next_occurrence
from recurring_ledger.services.storage import (
    AdvanceError,
    FetchError,
    GoogleSheetsClient,
    GoogleSheetsLedgerWriter,
    GoogleSheetsRuleRepository,
    InMemoryLedgerStore,
    LedgerWriter,
    RuleRepository,
    WriteError,
)
from recurring_ledger.trigger import TriggerGate


logger = structlog.get_logger(__name__)


def utc_today() -> date:
    """Run date used when the caller doesn't pass one."""
    return datetime.now(timezone.utc).date()


def decide_update(rule: RecurringRule, candidate: date) -> RuleUpdate:
    """
    Decide a fired rule's fate.

    Past its end_date the rule is deactivated and next_due_date is left
    at the date that just fired, as a record of the last firing.
    """
    if rule.end_date is not None and candidate > rule.end_date:
        return RuleUpdate(is_active=False)
    return RuleUpdate(next_due_date=candidate)


class BatchRunner:
    """
    Orchestrates one batch run over all due rules.

    Rows the store could not parse are reported as invalid outcomes
    first. Flow per rule:
    1. Compute the next occurrence (invalid rules are skipped untouched)
    2. Append the ledger entry (failure leaves the rule due)
    3. Advance or deactivate the rule (failure is reported for review)

    Rules are processed sequentially. Nothing done for one rule is
    rolled back because of a later rule.
    """

    def __init__(
        self,
        rules: RuleRepository,
        ledger: LedgerWriter,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._rules = rules
        self._ledger = ledger
        self._audit_logger = audit_logger or AuditLogger()

    async def run(self, today: Optional[date] = None) -> BatchRunResult:
        """
        Process every rule due on or before today.

        Args:
            today: Run date (defaults to the current UTC date)

        Returns:
            BatchRunResult with one RuleOutcome per due rule and per
            stored row that could not be read

        Raises:
            FetchError: If due rules cannot be read. Nothing is processed.
        """
        today = today or utc_today()
        result = BatchRunResult(run_id=create_correlation_id(), run_date=today)
        await self._audit_logger.log_run_started(result.run_id, today)

        try:
            due_rules = await self._rules.fetch_due(today)
        except FetchError as e:
            await self._audit_logger.log_fetch_failed(result.run_id, str(e))
            raise
        except Exception as e:
            await self._audit_logger.log_fetch_failed(result.run_id, str(e))
            raise FetchError(f"Failed to fetch recurring rules: {e}") from e

        await self._audit_logger.log_rules_fetched(result.run_id, len(due_rules))

        for unreadable in self._rules.unreadable_rules():
            outcome = await self.report_unreadable(unreadable, result)
            result.outcomes.append(outcome)

        for rule in due_rules:
            outcome = await self.process_rule(rule, result)
            result.outcomes.append(outcome)

        await self._audit_logger.log_run_completed(
            run_id=result.run_id,
            processed=result.count,
            failed=result.failed_rule_ids,
            advance_failed=result.advance_failed_rule_ids,
            unreadable=result.unreadable_rows,
        )
        return result

    async def report_unreadable(
        self,
        unreadable: UnreadableRule,
        result: BatchRunResult,
    ) -> RuleOutcome:
        """Turn a row the store could not parse into an invalid outcome."""
        await self._audit_logger.log_rule_unreadable(
            row_ref=unreadable.row_ref,
            rule_id=unreadable.rule_id,
            error_message=unreadable.error_message,
            run_id=result.run_id,
        )
        return RuleOutcome(
            rule_id=unreadable.rule_id,
            row_ref=unreadable.row_ref,
            status=RuleOutcomeStatus.INVALID,
            error_message=unreadable.error_message,
        )

    async def process_rule(self, rule: RecurringRule, result: BatchRunResult) -> RuleOutcome:
        """Fire one rule and return what happened to it."""
        run_id = result.run_id

        # Computed before any write so a bad rule never leaves an orphan entry
        try:
            candidate = next_occurrence(rule.next_due_date, rule.frequency)
        except CalculationError as e:
            await self._audit_logger.log_rule_invalid(
                rule_id=rule.id,
                frequency=rule.frequency,
                error_message=str(e),
                run_id=run_id,
            )
            return RuleOutcome(
                rule_id=rule.id,
                status=RuleOutcomeStatus.INVALID,
                next_due_date=rule.next_due_date,
                error_message=str(e),
            )

        entry = LedgerEntry.from_rule(rule)
        try:
            await self._ledger.append(rule.kind, entry)
        except Exception as e:
            error = e if isinstance(e, WriteError) else WriteError(str(e))
            await self._audit_logger.log_ledger_write_failed(
                rule_id=rule.id,
                kind=rule.kind.value,
                error_message=str(error),
                run_id=run_id,
            )
            return RuleOutcome(
                rule_id=rule.id,
                status=RuleOutcomeStatus.WRITE_FAILED,
                next_due_date=rule.next_due_date,
                error_message=str(error),
            )

        await self._audit_logger.log_ledger_entry_written(
            rule_id=rule.id,
            entry_id=entry.id,
            kind=rule.kind.value,
            entry_date=entry.transaction_date,
            run_id=run_id,
        )

        update = decide_update(rule, candidate)
        try:
            await self._rules.advance(rule.id, update)
        except Exception as e:
            # The entry is already committed: this rule can fire twice
            error = e if isinstance(e, AdvanceError) else AdvanceError(str(e))
            await self._audit_logger.log_rule_advance_failed(
                rule_id=rule.id,
                update=update.to_payload(),
                error_message=str(error),
                run_id=run_id,
            )
            return RuleOutcome(
                rule_id=rule.id,
                status=RuleOutcomeStatus.ADVANCE_FAILED,
                entry_date=entry.transaction_date,
                next_due_date=rule.next_due_date,
                error_message=str(error),
            )

        if update.is_active is False:
            await self._audit_logger.log_rule_deactivated(
                rule_id=rule.id,
                last_due_date=rule.next_due_date,
                end_date=rule.end_date,
                run_id=run_id,
            )
            return RuleOutcome(
                rule_id=rule.id,
                status=RuleOutcomeStatus.DEACTIVATED,
                entry_date=entry.transaction_date,
                next_due_date=rule.next_due_date,
            )

        await self._audit_logger.log_rule_advanced(
            rule_id=rule.id,
            previous_due_date=rule.next_due_date,
            next_due_date=candidate,
            run_id=run_id,
        )
        return RuleOutcome(
            rule_id=rule.id,
            status=RuleOutcomeStatus.ADVANCED,
            entry_date=entry.transaction_date,
            next_due_date=candidate,
        )


def log_settings_status() -> dict[str, bool]:
    """
    Log which configuration sections are usable. Called once at startup.

    Every broken section is reported, not just the first one
    create_app_components would trip over.
    """
    status = validate_all_settings()
    for name in ("google_sheets", "trigger", "app"):
        if status[name]:
            logger.info("settings_section_ok", section=name)
        else:
            logger.warning(
                "settings_section_invalid",
                section=name,
                error=status[f"{name}_error"],
            )
    return status


@dataclass
class AppComponents:
    """Everything the trigger endpoint needs for a run."""

    gate: TriggerGate
    runner: BatchRunner
    audit_logger: AuditLogger


def create_app_components(use_storage: bool = True) -> AppComponents:
    """
    Factory function to create all application components.

    Configuration is read once, here. Missing required settings raise
    a pydantic ValidationError, which is fatal at startup.

    Args:
        use_storage: Whether to connect to the configured ledger store.
                    Set to False (or store_backend=memory) for a dry
                    run against an empty in-memory store.
    """
    settings = get_settings()
    gate = TriggerGate(settings.trigger.cron_secret)
    audit_logger = AuditLogger()

    if use_storage and settings.app.store_backend == "google_sheets":
        sheets_client = GoogleSheetsClient(settings.google_sheets)
        rules: RuleRepository = GoogleSheetsRuleRepository(sheets_client)
        ledger: LedgerWriter = GoogleSheetsLedgerWriter(sheets_client)
    else:
        store = InMemoryLedgerStore()
        rules, ledger = store, store

    runner = BatchRunner(rules=rules, ledger=ledger, audit_logger=audit_logger)
    return AppComponents(gate=gate, runner=runner, audit_logger=audit_logger)
