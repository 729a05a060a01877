"""
Shared fixtures.

Tests run against the in-memory store. FlakyStore adds failure
injection on top of it so failure isolation can be exercised without
a real backend.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

import pytest

from recurring_ledger.models.rule import (
    LedgerEntry,
    RecurringRule,
    RuleUpdate,
    TransactionType,
    UnreadableRule,
)
from recurring_ledger.services.storage import (
    AdvanceError,
    FetchError,
    InMemoryLedgerStore,
    WriteError,
)


def build_rule(**overrides) -> RecurringRule:
    data = {
        "id": uuid4(),
        "user_id": uuid4(),
        "type": "expense",
        "amount": Decimal("25.00"),
        "category": "Subscriptions",
        "frequency": "weekly",
        "start_date": date(2024, 1, 1),
        "next_due_date": date(2024, 3, 1),
        "end_date": None,
        "description": "Gym membership",
        "is_active": True,
    }
    data.update(overrides)
    return RecurringRule.model_validate(data)


class FlakyStore(InMemoryLedgerStore):
    """In-memory store that fails on demand and can report unreadable rows."""

    def __init__(
        self,
        rules: Iterable[RecurringRule] = (),
        fail_fetch: bool = False,
        fail_append_for: Iterable[UUID] = (),
        fail_advance_for: Iterable[UUID] = (),
        unreadable: Iterable[UnreadableRule] = (),
    ):
        super().__init__(rules)
        self.unreadable = list(unreadable)
        self.fail_fetch = fail_fetch
        self.fail_append_for = set(fail_append_for)
        self.fail_advance_for = set(fail_advance_for)

    async def fetch_due(self, as_of: date) -> list[RecurringRule]:
        if self.fail_fetch:
            self.read_count += 1
            raise FetchError("store unavailable")
        return await super().fetch_due(as_of)

    def unreadable_rules(self) -> list[UnreadableRule]:
        return list(self.unreadable)

    async def append(self, kind: TransactionType, entry: LedgerEntry) -> bool:
        if entry.recurring_rule_id in self.fail_append_for:
            self.write_count += 1
            raise WriteError("insert rejected")
        return await super().append(kind, entry)

    async def advance(self, rule_id: UUID, update: RuleUpdate) -> bool:
        if rule_id in self.fail_advance_for:
            self.write_count += 1
            raise AdvanceError("update rejected")
        return await super().advance(rule_id, update)


@pytest.fixture
def make_rule():
    """Factory for valid rules; keyword overrides use stored column names."""
    return build_rule


@pytest.fixture
def flaky_store():
    """Factory for FlakyStore instances."""
    return FlakyStore
