"""Services package."""

from recurring_ledger.services.storage import (
    AdvanceError,
    ConnectionError,
    FetchError,
    GoogleSheetsClient,
    GoogleSheetsLedgerWriter,
    GoogleSheetsRuleRepository,
    InMemoryLedgerStore,
    LedgerWriter,
    NotFoundError,
    RuleRepository,
    StorageError,
    WriteError,
)

__all__ = [
    "AdvanceError",
    "ConnectionError",
    "FetchError",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerWriter",
    "GoogleSheetsRuleRepository",
    "InMemoryLedgerStore",
    "LedgerWriter",
    "NotFoundError",
    "RuleRepository",
    "StorageError",
    "WriteError",
]
