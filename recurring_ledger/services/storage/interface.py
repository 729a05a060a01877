"""
Abstract Storage Interface

DESIGN DECISION: The batch run talks to the ledger store only through
these two narrow contracts. This allows us to:
1. Run against Google Sheets in production
2. Use in-memory storage for tests and dry runs
3. Keep the privileged, cross-user credential out of business logic

The scheduler never creates or deletes rules, so the rule contract has
exactly two operations, plus a report of rows it could not read.
"""

from abc import ABC, abstractmethod
from datetime import date
from uuid import UUID

from recurring_ledger.models.rule import (
    LedgerEntry,
    RecurringRule,
    RuleUpdate,
    TransactionType,
    UnreadableRule,
)


class RuleRepository(ABC):
    """
    Abstract interface for recurring rule storage.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def fetch_due(self, as_of: date) -> list[RecurringRule]:
        """
        Fetch every rule that should fire in a run dated as_of.

        This is system-wide: rules of all users are returned.

        Args:
            as_of: The run date

        Returns:
            All rules with is_active = true and next_due_date <= as_of

        Raises:
            FetchError: If the rule list cannot be read. No partial
                list is ever returned.
        """
        pass

    @abstractmethod
    async def advance(self, rule_id: UUID, update: RuleUpdate) -> bool:
        """
        Apply a partial schedule update to one rule.

        Args:
            rule_id: The rule to update
            update: Fields to change (next_due_date and/or is_active)

        Returns:
            True if updated successfully

        Raises:
            AdvanceError: If the update fails
            NotFoundError: If the rule doesn't exist
        """
        pass

    def unreadable_rules(self) -> list[UnreadableRule]:
        """
        Rows the most recent fetch_due could not parse.

        A row that might be due but fails to parse is neither returned
        by fetch_due nor dropped: it is listed here so the run can
        report it. Stores that hold typed rules never have any.
        """
        return []


class LedgerWriter(ABC):
    """
    Abstract interface for realized transaction storage.

    Ledgers are append-only from the scheduler's point of view.
    """

    @abstractmethod
    async def append(self, kind: TransactionType, entry: LedgerEntry) -> bool:
        """
        Append one entry to the income or expense ledger.

        Args:
            kind: Selects the income or expense ledger
            entry: The entry to write

        Returns:
            True if written successfully

        Raises:
            WriteError: If the write fails
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class FetchError(StorageError):
    """Due rules could not be read. Fatal to the whole run."""
    pass


class WriteError(StorageError):
    """A ledger entry could not be written."""
    pass


class AdvanceError(StorageError):
    """A rule's schedule could not be updated."""
    pass


class NotFoundError(AdvanceError):
    """Rule to update not found in storage."""
    pass
