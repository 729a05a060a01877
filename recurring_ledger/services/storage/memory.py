"""
In-Memory Storage Implementation

Implements both storage contracts over plain dicts and lists. Used for
dry runs (store_backend=memory) and as the backing store in tests.

Read and write counters make it possible to assert that a code path
performed no store I/O at all.
"""

from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from recurring_ledger.models.rule import (
    LedgerEntry,
    RecurringRule,
    RuleUpdate,
    TransactionType,
)
from recurring_ledger.services.storage.interface import (
    LedgerWriter,
    NotFoundError,
    RuleRepository,
)


class InMemoryLedgerStore(RuleRepository, LedgerWriter):
    """Rules plus income and expense ledgers, held in memory."""

    def __init__(self, rules: Optional[Iterable[RecurringRule]] = None):
        self._rules: dict[UUID, RecurringRule] = {}
        self._ledgers: dict[TransactionType, list[LedgerEntry]] = {
            TransactionType.INCOME: [],
            TransactionType.EXPENSE: [],
        }
        self.read_count = 0
        self.write_count = 0
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: RecurringRule) -> None:
        self._rules[rule.id] = rule

    def get_rule(self, rule_id: UUID) -> Optional[RecurringRule]:
        return self._rules.get(rule_id)

    def entries(self, kind: Optional[TransactionType] = None) -> list[LedgerEntry]:
        """Entries of one ledger, or of both when kind is None."""
        if kind is not None:
            return list(self._ledgers[kind])
        return self._ledgers[TransactionType.INCOME] + self._ledgers[TransactionType.EXPENSE]

    def entries_for_rule(self, rule_id: UUID) -> list[LedgerEntry]:
        return [e for e in self.entries() if e.recurring_rule_id == rule_id]

    @property
    def io_count(self) -> int:
        return self.read_count + self.write_count

    async def fetch_due(self, as_of: date) -> list[RecurringRule]:
        self.read_count += 1
        due = [rule for rule in self._rules.values() if rule.is_due(as_of)]
        return sorted(due, key=lambda r: (r.next_due_date, str(r.id)))

    async def advance(self, rule_id: UUID, update: RuleUpdate) -> bool:
        self.write_count += 1
        rule = self._rules.get(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule not found: {rule_id}")
        self._rules[rule_id] = rule.model_copy(update=update.model_dump(exclude_none=True))
        return True

    async def append(self, kind: TransactionType, entry: LedgerEntry) -> bool:
        self.write_count += 1
        self._ledgers[kind].append(entry)
        return True
