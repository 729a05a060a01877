"""
Core Data Models for the Recurring Ledger Scheduler

These models define the strict schemas for everything the scheduler reads
from and writes to the ledger store:
1. RecurringRule - a user-owned schedule, read by the batch run
2. LedgerEntry - a realized income/expense record, written by the batch run
3. RuleUpdate - the partial schedule update applied after a firing
4. RuleOutcome / BatchRunResult - per-rule results aggregated by a run
5. UnreadableRule - a stored rule row that failed to parse

DESIGN DECISION: We use Pydantic v2 so that rows coming back from the
store are validated once, at the repository boundary. Business logic
only ever sees typed values.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Which ledger a rule writes into."""
    INCOME = "income"
    EXPENSE = "expense"


class Frequency(str, Enum):
    """
    Supported schedule frequencies.

    Month and year steps are calendar steps, not fixed day counts.
    """
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RuleOutcomeStatus(str, Enum):
    """Terminal state of one rule within one batch run."""
    ADVANCED = "advanced"              # Entry written, next_due_date moved forward
    DEACTIVATED = "deactivated"        # Entry written, rule reached its end_date
    WRITE_FAILED = "write_failed"      # Ledger append failed, rule left due
    ADVANCE_FAILED = "advance_failed"  # Entry written, schedule update failed
    INVALID = "invalid"                # Rule data could not be scheduled


RECURRING_PREFIX = "Recurring: "
RECURRING_DEFAULT_DESCRIPTION = "Recurring Transaction"


# =============================================================================
# RECURRING RULE
# =============================================================================

class RecurringRule(BaseModel):
    """
    A schedule that periodically produces a ledger entry.

    Rules are created and edited by the interactive application. The
    scheduler never creates or deletes them; it only moves
    next_due_date forward or flips is_active off.

    NOTE: frequency is kept as the raw stored string. An unknown value
    must surface as a per-rule calculation failure during the run, not
    as a validation failure that would poison the whole fetch. For the
    same reason amount, category and description are read as stored;
    the interactive application validates them when the rule is saved.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
    )

    id: UUID = Field(..., description="Rule identifier")
    user_id: UUID = Field(..., description="Owner of the rule")
    kind: TransactionType = Field(
        ...,
        alias="type",
        description="Target ledger (stored as 'type')"
    )
    amount: Decimal = Field(
        ...,
        description="Amount of each generated entry (validated when the rule is created)"
    )
    category: Optional[str] = Field(
        default=None,
        description="Free-form category label"
    )
    frequency: str = Field(
        ...,
        description="One of daily, weekly, monthly, yearly"
    )
    start_date: date = Field(..., description="Date the schedule began")
    next_due_date: date = Field(..., description="Next scheduled firing")
    end_date: Optional[date] = Field(
        default=None,
        description="Last date on which the rule may fire"
    )
    description: Optional[str] = None
    is_active: bool = Field(default=True)

    @field_validator('category', 'description', mode='before')
    @classmethod
    def empty_string_to_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator('end_date', mode='before')
    @classmethod
    def empty_end_date_to_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator('frequency')
    @classmethod
    def normalize_frequency(cls, v: str) -> str:
        return v.lower()

    @model_validator(mode='after')
    def validate_schedule(self) -> 'RecurringRule':
        """next_due_date can never precede the start of the schedule."""
        if self.next_due_date < self.start_date:
            raise ValueError("next_due_date cannot be before start_date")
        return self

    def is_due(self, as_of: date) -> bool:
        """True when the rule should fire in a run dated as_of."""
        return self.is_active and self.next_due_date <= as_of


# =============================================================================
# LEDGER ENTRY
# =============================================================================

class LedgerEntry(BaseModel):
    """
    A realized income or expense record.

    The entry date is the rule's due date, not the wall-clock time of
    the run, so a late run still books the entry on the day it was due.
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    amount: Decimal
    category: Optional[str] = None
    transaction_date: date
    description: str
    recurring_rule_id: Optional[UUID] = Field(
        default=None,
        description="Rule that produced this entry"
    )

    @classmethod
    def from_rule(cls, rule: RecurringRule) -> 'LedgerEntry':
        """Build the entry a rule produces for its current due date."""
        if rule.description:
            description = f"{RECURRING_PREFIX}{rule.description}"
        else:
            description = RECURRING_DEFAULT_DESCRIPTION
        return cls(
            user_id=rule.user_id,
            amount=rule.amount,
            category=rule.category,
            transaction_date=rule.next_due_date,
            description=description,
            recurring_rule_id=rule.id,
        )


class UnreadableRule(BaseModel):
    """
    A stored rule row that could not be parsed into a RecurringRule.

    Reported by the repository alongside the due rules so the run can
    surface it instead of silently leaving it out.
    """

    row_ref: str = Field(..., description="Where the row lives, e.g. 'recurring_transactions!5'")
    rule_id: Optional[UUID] = Field(
        default=None,
        description="The row's id, when that much could be parsed"
    )
    error_message: str


# =============================================================================
# SCHEDULE UPDATES AND RUN RESULTS
# =============================================================================

class RuleUpdate(BaseModel):
    """
    Partial update applied to a rule after it fired.

    Exactly the fields that are set get written back.
    """

    next_due_date: Optional[date] = None
    is_active: Optional[bool] = None

    @model_validator(mode='after')
    def validate_not_empty(self) -> 'RuleUpdate':
        if self.next_due_date is None and self.is_active is None:
            raise ValueError("RuleUpdate must set next_due_date or is_active")
        return self

    def to_payload(self) -> dict:
        """JSON-ready dict of only the fields being changed."""
        return self.model_dump(mode="json", exclude_none=True)


class RuleOutcome(BaseModel):
    """
    Result of processing a single rule.

    rule_id is None only for a stored row whose id itself is unreadable;
    row_ref then says where to find it.
    """

    rule_id: Optional[UUID]
    row_ref: Optional[str] = None
    status: RuleOutcomeStatus
    entry_date: Optional[date] = Field(
        default=None,
        description="Date of the ledger entry, when one was written"
    )
    next_due_date: Optional[date] = Field(
        default=None,
        description="Rule's next_due_date after this run"
    )
    error_message: Optional[str] = None

    @property
    def ledger_written(self) -> bool:
        return self.status in (
            RuleOutcomeStatus.ADVANCED,
            RuleOutcomeStatus.DEACTIVATED,
            RuleOutcomeStatus.ADVANCE_FAILED,
        )


class BatchRunResult(BaseModel):
    """
    Aggregate result of one batch run.

    "Processed" means the ledger write succeeded, because that is the
    effect users see. A rule whose schedule update then failed still
    counts, and is listed separately for manual review.
    """

    run_id: UUID = Field(default_factory=uuid4)
    run_date: date
    outcomes: list[RuleOutcome] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return sum(1 for o in self.outcomes if o.ledger_written)

    @property
    def failed_rule_ids(self) -> list[UUID]:
        """Rules that produced no entry and are still due."""
        return [
            o.rule_id for o in self.outcomes
            if o.rule_id is not None
            and o.status in (RuleOutcomeStatus.WRITE_FAILED, RuleOutcomeStatus.INVALID)
        ]

    @property
    def unreadable_rows(self) -> list[str]:
        """Stored rows that could not be parsed at all."""
        return [o.row_ref for o in self.outcomes if o.row_ref is not None]

    @property
    def advance_failed_rule_ids(self) -> list[UUID]:
        """Rules that may fire a second time for the same occurrence."""
        return [
            o.rule_id for o in self.outcomes
            if o.status == RuleOutcomeStatus.ADVANCE_FAILED
        ]

    @property
    def deactivated_rule_ids(self) -> list[UUID]:
        return [
            o.rule_id for o in self.outcomes
            if o.status == RuleOutcomeStatus.DEACTIVATED
        ]

    def to_response(self) -> dict:
        """Body returned to the trigger caller."""
        return {"count": self.count}
