"""
Google Sheets Storage Implementation

DESIGN DECISION: The ledger store is a spreadsheet with one worksheet
per table:
1. recurring_transactions - the rules, one per row
2. income / expenses - the two ledgers the scheduler appends to

The service account behind credentials_path has access to every user's
rows, which is what a system-wide batch needs.

TRADEOFFS:
- No transactions: the ledger append and the rule update are two
  separate writes, so a failure between them can double-fire a rule
  on the next run. The batch runner reports those rules for review.
- Limited query capabilities: due rules are filtered in Python.

Connection setup and the due-rule read are retried. Writes are NOT
retried; a failed write leaves the rule due for the next run.

The rules sheet is read once per run. Rule updates go to the row
numbers seen by that read, so rows must not be deleted or reordered
while a run is in progress.
"""

from datetime import date
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from recurring_ledger.config import GoogleSheetsSettings, get_settings
from recurring_ledger.models.rule import (
    LedgerEntry,
    RecurringRule,
    RuleUpdate,
    TransactionType,
    UnreadableRule,
)
from recurring_ledger.services.storage.interface import (
    AdvanceError,
    ConnectionError,
    FetchError,
    LedgerWriter,
    NotFoundError,
    RuleRepository,
    WriteError,
)


logger = structlog.get_logger(__name__)


# Column mappings for the rules sheet
RULE_COLUMNS = [
    "id",
    "user_id",
    "type",
    "amount",
    "category",
    "frequency",
    "start_date",
    "next_due_date",
    "end_date",
    "description",
    "is_active",
]

# Column mappings for the income and expense sheets
LEDGER_COLUMNS = [
    "id",
    "user_id",
    "amount",
    "category",
    "transaction_date",
    "description",
    "recurring_rule_id",
]

_TRUE_VALUES = {"true", "1", "yes", "y", "t"}


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _format_cell(value) -> str:
    """Render a RuleUpdate value the way it is stored in the sheet."""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value)


def _parse_id(value) -> Optional[UUID]:
    """Parse an id cell in any letter case; None if it is not a UUID."""
    try:
        return UUID(str(value).strip())
    except ValueError:
        return None


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_url(self._settings.spreadsheet_url)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_url}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        if title in self._worksheets:
            return self._worksheets[title]
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        self._worksheets[title] = sheet
        return sheet

    def get_rules_sheet(self) -> gspread.Worksheet:
        """Get or create the recurring rules worksheet."""
        return self._get_or_create_sheet(self._settings.rules_sheet_name, RULE_COLUMNS)

    def get_ledger_sheet(self, kind: TransactionType) -> gspread.Worksheet:
        """Get or create the income or expense worksheet."""
        if kind == TransactionType.INCOME:
            title = self._settings.income_sheet_name
        else:
            title = self._settings.expense_sheet_name
        return self._get_or_create_sheet(title, LEDGER_COLUMNS)


class GoogleSheetsRuleRepository(RuleRepository):
    """
    Google Sheets implementation of the rule repository.

    Columns are located by the header row, so the sheet may carry extra
    columns used by the interactive application. fetch_due remembers
    the row number of every rule id it read, and advance writes to
    those rows without reading the sheet again.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._header: list[str] = []
        self._row_numbers: dict[UUID, int] = {}
        self._unreadable: list[UnreadableRule] = []

    def _row_to_rule(self, record: dict) -> RecurringRule:
        """Convert a header-keyed spreadsheet row to a RecurringRule."""
        data = {column: record.get(column, "") for column in RULE_COLUMNS}
        data["is_active"] = _parse_bool(data["is_active"])
        return RecurringRule.model_validate(data)

    def _records(self, sheet: gspread.Worksheet) -> tuple[list[str], list[tuple[int, dict]]]:
        """Header row plus (sheet row number, header-keyed record) for every row with an id."""
        all_rows = sheet.get_all_values()
        if not all_rows:
            return [], []
        header = all_rows[0]
        records = []
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            record = dict(zip(header, row))
            if not record.get("id", "").strip():
                continue
            records.append((idx, record))
        return header, records

    def _load(self, sheet: gspread.Worksheet) -> list[tuple[int, dict]]:
        """Read the whole rules sheet and remember where each rule id lives."""
        header, records = self._records(sheet)
        self._header = header
        self._row_numbers = {}
        for idx, record in records:
            rule_id = _parse_id(record["id"])
            if rule_id is not None:
                self._row_numbers.setdefault(rule_id, idx)
        return records

    @staticmethod
    def _may_be_due(record: dict, as_of: date) -> bool:
        """False only for a row that is plainly inactive or plainly not due yet."""
        if not _parse_bool(record.get("is_active", "")):
            return False
        try:
            return date.fromisoformat(record.get("next_due_date", "").strip()) <= as_of
        except ValueError:
            return True

    def unreadable_rules(self) -> list[UnreadableRule]:
        return list(self._unreadable)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def fetch_due(self, as_of: date) -> list[RecurringRule]:
        """Read the rules sheet and keep the active, due ones."""
        self._unreadable = []
        try:
            sheet = self._client.get_rules_sheet()
            records = self._load(sheet)
        except Exception as e:
            raise FetchError(f"Failed to fetch recurring rules: {e}") from e

        due = []
        for idx, record in records:
            try:
                rule = self._row_to_rule(record)
            except ValidationError as e:
                if self._may_be_due(record, as_of):
                    row_ref = f"{sheet.title}!{idx}"
                    logger.error(
                        "rule_row_unreadable",
                        row=row_ref,
                        rule_id=record.get("id"),
                        error=str(e),
                    )
                    self._unreadable.append(UnreadableRule(
                        row_ref=row_ref,
                        rule_id=_parse_id(record["id"]),
                        error_message=str(e),
                    ))
                continue
            if rule.is_due(as_of):
                due.append(rule)

        return due

    async def advance(self, rule_id: UUID, update: RuleUpdate) -> bool:
        """Write the changed fields of one rule row."""
        try:
            sheet = self._client.get_rules_sheet()
            row_number = self._row_numbers.get(rule_id)
            if row_number is None:
                # Not seen by the last fetch
                self._load(sheet)
                row_number = self._row_numbers.get(rule_id)
            if row_number is None:
                raise NotFoundError(f"Rule not found: {rule_id}")

            for field, value in update.to_payload().items():
                sheet.update_cell(row_number, self._header.index(field) + 1, _format_cell(value))
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise AdvanceError(f"Failed to update rule {rule_id}: {e}") from e


class GoogleSheetsLedgerWriter(LedgerWriter):
    """
    Google Sheets implementation of the ledger writer.

    Income and expenses live in separate worksheets with the same columns.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _entry_to_row(self, entry: LedgerEntry) -> list:
        """Convert a LedgerEntry to a spreadsheet row."""
        return [
            str(entry.id),
            str(entry.user_id),
            str(entry.amount),
            entry.category or "",
            entry.transaction_date.isoformat(),
            entry.description,
            str(entry.recurring_rule_id) if entry.recurring_rule_id else "",
        ]

    async def append(self, kind: TransactionType, entry: LedgerEntry) -> bool:
        """Append one entry to the matching ledger sheet."""
        try:
            sheet = self._client.get_ledger_sheet(kind)
            sheet.append_row(self._entry_to_row(entry), value_input_option="RAW")
            return True
        except Exception as e:
            raise WriteError(f"Failed to insert {kind.value} entry: {e}") from e
