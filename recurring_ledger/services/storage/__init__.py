"""
Storage Services Package

Provides the abstract repository contracts and their implementations.
Google Sheets is the production backend; the in-memory store serves dry runs and tests.
"""

from recurring_ledger.services.storage.interface import (
    AdvanceError,
    ConnectionError,
    FetchError,
    LedgerWriter,
    NotFoundError,
    RuleRepository,
    StorageError,
    WriteError,
)
from recurring_ledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsLedgerWriter,
    GoogleSheetsRuleRepository,
)
from recurring_ledger.services.storage.memory import InMemoryLedgerStore

__all__ = [
    # Interfaces
    "LedgerWriter",
    "RuleRepository",
    # Exceptions
    "AdvanceError",
    "ConnectionError",
    "FetchError",
    "NotFoundError",
    "StorageError",
    "WriteError",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsLedgerWriter",
    "GoogleSheetsRuleRepository",
    # In-memory implementation
    "InMemoryLedgerStore",
]
