"""
Tests for the batch runner.

Runs against the in-memory store; no real backend is touched.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from recurring_ledger.audit import AuditLogger
from recurring_ledger.models.audit import AuditEventType, AuditSeverity
from recurring_ledger.models.rule import RuleOutcomeStatus, TransactionType, UnreadableRule
from recurring_ledger.orchestrator import BatchRunner, decide_update
from recurring_ledger.services.storage import FetchError, InMemoryLedgerStore


def run_batch(store, today, audit_logger=None):
    runner = BatchRunner(rules=store, ledger=store, audit_logger=audit_logger)
    return asyncio.run(runner.run(today=today))


class TestDueSelection:
    """Tests for which rules fetch_due returns."""

    def test_only_active_and_due_rules_selected(self, make_rule):
        due = make_rule(next_due_date=date(2024, 3, 1))
        overdue = make_rule(next_due_date=date(2024, 2, 20))
        future = make_rule(next_due_date=date(2024, 3, 2))
        paused = make_rule(next_due_date=date(2024, 2, 1), is_active=False)
        store = InMemoryLedgerStore([due, overdue, future, paused])

        selected = asyncio.run(store.fetch_due(date(2024, 3, 1)))

        assert {r.id for r in selected} == {due.id, overdue.id}

    def test_rules_of_all_users_selected(self, make_rule):
        rules = [make_rule() for _ in range(3)]
        store = InMemoryLedgerStore(rules)

        selected = asyncio.run(store.fetch_due(date(2024, 3, 1)))

        assert len({r.user_id for r in selected}) == 3


class TestHappyPath:
    """Tests for successful firings."""

    def test_weekly_rule_fires_and_advances(self, make_rule):
        """Test a weekly rule produces one entry and moves a week forward."""
        rule = make_rule(frequency="weekly", next_due_date=date(2024, 3, 1))
        store = InMemoryLedgerStore([rule])

        result = run_batch(store, date(2024, 3, 1))

        assert result.count == 1
        entries = store.entries_for_rule(rule.id)
        assert len(entries) == 1
        assert entries[0].transaction_date == date(2024, 3, 1)
        updated = store.get_rule(rule.id)
        assert updated.next_due_date == date(2024, 3, 8)
        assert updated.is_active is True
        assert result.outcomes[0].status == RuleOutcomeStatus.ADVANCED
        assert result.outcomes[0].next_due_date == date(2024, 3, 8)

    def test_entry_dated_on_due_date_not_run_date(self, make_rule):
        rule = make_rule(frequency="monthly", next_due_date=date(2024, 2, 10))
        store = InMemoryLedgerStore([rule])

        run_batch(store, date(2024, 3, 1))

        assert store.entries()[0].transaction_date == date(2024, 2, 10)
        assert store.get_rule(rule.id).next_due_date == date(2024, 3, 10)

    def test_entry_fields_copied_from_rule(self, make_rule):
        rule = make_rule(
            type="income",
            amount=Decimal("1500.00"),
            category="Salary",
            description="Monthly pay",
        )
        store = InMemoryLedgerStore([rule])

        run_batch(store, date(2024, 3, 1))

        assert store.entries(TransactionType.EXPENSE) == []
        entry = store.entries(TransactionType.INCOME)[0]
        assert entry.user_id == rule.user_id
        assert entry.amount == Decimal("1500.00")
        assert entry.category == "Salary"
        assert entry.description == "Recurring: Monthly pay"
        assert entry.recurring_rule_id == rule.id

    def test_entry_without_description_gets_default(self, make_rule):
        rule = make_rule(description=None)
        store = InMemoryLedgerStore([rule])

        run_batch(store, date(2024, 3, 1))

        assert store.entries()[0].description == "Recurring Transaction"

    def test_no_due_rules(self, make_rule):
        store = InMemoryLedgerStore([make_rule(next_due_date=date(2024, 4, 1))])

        result = run_batch(store, date(2024, 3, 1))

        assert result.count == 0
        assert result.outcomes == []
        assert result.to_response() == {"count": 0}

    def test_second_run_same_day_fires_nothing(self, make_rule):
        """Test that running twice for the same day fires each rule once."""
        rules = [
            make_rule(frequency="daily"),
            make_rule(frequency="weekly"),
            make_rule(frequency="monthly"),
            make_rule(frequency="yearly"),
        ]
        store = InMemoryLedgerStore(rules)

        first = run_batch(store, date(2024, 3, 1))
        second = run_batch(store, date(2024, 3, 1))

        assert first.count == 4
        assert second.count == 0
        assert len(store.entries()) == 4


class TestEndOfLife:
    """Tests for deactivation at end_date."""

    def test_daily_rule_deactivated_on_end_date(self, make_rule):
        rule = make_rule(
            frequency="daily",
            next_due_date=date(2024, 3, 1),
            end_date=date(2024, 3, 1),
        )
        store = InMemoryLedgerStore([rule])

        result = run_batch(store, date(2024, 3, 1))

        assert result.count == 1
        assert store.entries()[0].transaction_date == date(2024, 3, 1)
        updated = store.get_rule(rule.id)
        assert updated.is_active is False
        assert updated.next_due_date == date(2024, 3, 1)
        assert result.deactivated_rule_ids == [rule.id]

    def test_candidate_on_end_date_stays_active(self, make_rule):
        rule = make_rule(
            frequency="weekly",
            next_due_date=date(2024, 3, 1),
            end_date=date(2024, 3, 8),
        )
        store = InMemoryLedgerStore([rule])

        run_batch(store, date(2024, 3, 1))

        updated = store.get_rule(rule.id)
        assert updated.is_active is True
        assert updated.next_due_date == date(2024, 3, 8)

    def test_deactivated_rule_not_fired_again(self, make_rule):
        rule = make_rule(
            frequency="daily",
            next_due_date=date(2024, 3, 1),
            end_date=date(2024, 3, 1),
        )
        store = InMemoryLedgerStore([rule])

        run_batch(store, date(2024, 3, 1))
        later = run_batch(store, date(2024, 3, 10))

        assert later.count == 0
        assert len(store.entries()) == 1

    def test_decide_update_without_end_date(self, make_rule):
        update = decide_update(make_rule(), date(2024, 3, 8))
        assert update.to_payload() == {"next_due_date": "2024-03-08"}


class TestMonthlyClamping:
    """Month-end rules through a full run."""

    @pytest.mark.parametrize("year,expected", [
        (2024, date(2024, 2, 29)),
        (2025, date(2025, 2, 28)),
    ])
    def test_jan_31_advances_to_end_of_february(self, make_rule, year, expected):
        rule = make_rule(
            frequency="monthly",
            start_date=date(year, 1, 31),
            next_due_date=date(year, 1, 31),
        )
        store = InMemoryLedgerStore([rule])

        run_batch(store, date(year, 1, 31))

        assert store.get_rule(rule.id).next_due_date == expected


class TestFailureIsolation:
    """Tests for per-rule and run-level failures."""

    def test_write_failure_leaves_rule_due(self, make_rule, flaky_store):
        rule_a = make_rule(next_due_date=date(2024, 3, 1))
        rule_b = make_rule(next_due_date=date(2024, 3, 1))
        store = flaky_store([rule_a, rule_b], fail_append_for=[rule_b.id])

        result = run_batch(store, date(2024, 3, 1))

        assert result.count == 1
        assert store.get_rule(rule_a.id).next_due_date == date(2024, 3, 8)
        untouched = store.get_rule(rule_b.id)
        assert untouched.next_due_date == date(2024, 3, 1)
        assert untouched.is_active is True
        assert store.entries_for_rule(rule_b.id) == []
        assert result.failed_rule_ids == [rule_b.id]

    def test_failed_rule_retried_next_run(self, make_rule, flaky_store):
        rule = make_rule(next_due_date=date(2024, 3, 1))
        store = flaky_store([rule], fail_append_for=[rule.id])

        run_batch(store, date(2024, 3, 1))
        store.fail_append_for.clear()
        retry = run_batch(store, date(2024, 3, 2))

        assert retry.count == 1
        assert store.entries_for_rule(rule.id)[0].transaction_date == date(2024, 3, 1)

    def test_fetch_failure_aborts_run(self, make_rule, flaky_store):
        store = flaky_store([make_rule()], fail_fetch=True)
        audit_logger = AuditLogger()

        with pytest.raises(FetchError):
            run_batch(store, date(2024, 3, 1), audit_logger)

        assert store.write_count == 0
        assert store.entries() == []
        event_types = [e.event_type for e in audit_logger.events]
        assert AuditEventType.FETCH_FAILED in event_types

    def test_advance_failure_counts_entry_and_reports_rule(self, make_rule, flaky_store):
        rule = make_rule(next_due_date=date(2024, 3, 1))
        store = flaky_store([rule], fail_advance_for=[rule.id])

        result = run_batch(store, date(2024, 3, 1))

        assert result.count == 1
        assert result.advance_failed_rule_ids == [rule.id]
        assert result.failed_rule_ids == []
        assert len(store.entries_for_rule(rule.id)) == 1
        assert store.get_rule(rule.id).next_due_date == date(2024, 3, 1)

    def test_unknown_frequency_skipped_without_writes(self, make_rule):
        bad = make_rule(frequency="fortnightly")
        good = make_rule()
        store = InMemoryLedgerStore([bad, good])
        audit_logger = AuditLogger()

        result = run_batch(store, date(2024, 3, 1), audit_logger)

        assert result.count == 1
        assert store.entries_for_rule(bad.id) == []
        assert store.get_rule(bad.id) == bad
        outcome = next(o for o in result.outcomes if o.rule_id == bad.id)
        assert outcome.status == RuleOutcomeStatus.INVALID
        assert "fortnightly" in outcome.error_message
        invalid_events = [
            e for e in audit_logger.events
            if e.event_type == AuditEventType.RULE_INVALID
        ]
        assert len(invalid_events) == 1


class TestRunAudit:
    """Tests for the audit trail of a run."""

    def test_events_share_run_id(self, make_rule):
        store = InMemoryLedgerStore([make_rule()])
        audit_logger = AuditLogger()

        result = run_batch(store, date(2024, 3, 1), audit_logger)

        assert {e.correlation_id for e in audit_logger.events} == {result.run_id}
        assert [e.event_type for e in audit_logger.events] == [
            AuditEventType.RUN_STARTED,
            AuditEventType.RULES_FETCHED,
            AuditEventType.LEDGER_ENTRY_WRITTEN,
            AuditEventType.RULE_ADVANCED,
            AuditEventType.RUN_COMPLETED,
        ]


class TestUnschedulableRules:
    """Rules the runner cannot schedule are reported, never dropped."""

    def test_due_date_at_end_of_calendar_is_invalid(self, make_rule):
        """Test a rule with no next date is skipped and the batch carries on."""
        last_day = make_rule(frequency="daily", next_due_date=date.max)
        good = make_rule(next_due_date=date(2024, 3, 1))
        store = InMemoryLedgerStore([last_day, good])

        result = run_batch(store, date.max)

        assert result.count == 1
        assert len(store.entries_for_rule(good.id)) == 1
        assert store.entries_for_rule(last_day.id) == []
        assert store.get_rule(last_day.id) == last_day
        outcome = next(o for o in result.outcomes if o.rule_id == last_day.id)
        assert outcome.status == RuleOutcomeStatus.INVALID
        assert result.failed_rule_ids == [last_day.id]

    def test_unreadable_row_reported_as_invalid(self, make_rule, flaky_store):
        rule = make_rule(next_due_date=date(2024, 3, 1))
        broken_id = uuid4()
        store = flaky_store(
            [rule],
            unreadable=[
                UnreadableRule(
                    row_ref="recurring_transactions!7",
                    rule_id=broken_id,
                    error_message="next_due_date: invalid date",
                ),
                UnreadableRule(
                    row_ref="recurring_transactions!9",
                    error_message="id: invalid UUID",
                ),
            ],
        )
        audit_logger = AuditLogger()

        result = run_batch(store, date(2024, 3, 1), audit_logger)

        assert result.count == 1
        assert result.unreadable_rows == [
            "recurring_transactions!7",
            "recurring_transactions!9",
        ]
        assert result.failed_rule_ids == [broken_id]
        invalid = [o for o in result.outcomes if o.status == RuleOutcomeStatus.INVALID]
        assert len(invalid) == 2
        assert invalid[1].rule_id is None

        unreadable_events = [
            e for e in audit_logger.events
            if e.event_type == AuditEventType.RULE_UNREADABLE
        ]
        assert [e.details["row"] for e in unreadable_events] == [
            "recurring_transactions!7",
            "recurring_transactions!9",
        ]
        completed = audit_logger.events[-1]
        assert completed.event_type == AuditEventType.RUN_COMPLETED
        assert completed.severity == AuditSeverity.WARNING
        assert completed.details["unreadable_rows"] == result.unreadable_rows
