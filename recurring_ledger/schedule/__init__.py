"""Schedule arithmetic package."""

from recurring_ledger.schedule.occurrence import (
    CalculationError,
    next_occurrence,
    parse_frequency,
)

__all__ = [
    "CalculationError",
    "next_occurrence",
    "parse_frequency",
]
