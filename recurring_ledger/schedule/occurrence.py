"""
Occurrence Calculator

Pure calendar arithmetic: given the date a rule is currently due and
its frequency, return the date it is due next.

DESIGN DECISION: Month and year steps clamp to the last valid day of
the target month. Jan 31 + 1 month is Feb 29 in a leap year and Feb 28
otherwise; Feb 29 + 1 year is Feb 28. Clamping applies to the current
due date only, so a rule that was clamped to the 28th stays on the
28th from then on.

An unknown frequency, or a next date past the end of the calendar, is
a data-integrity error. We raise instead of silently picking a default.
"""

from datetime import date, timedelta
from typing import Union

from dateutil.relativedelta import relativedelta

from recurring_ledger.models.rule import Frequency


class CalculationError(ValueError):
    """A rule's schedule cannot be computed."""

    def __init__(self, frequency: object, message: str = ""):
        self.frequency = frequency
        super().__init__(message or f"Unknown frequency: {frequency!r}")


_STEPS = {
    Frequency.DAILY: timedelta(days=1),
    Frequency.WEEKLY: timedelta(weeks=1),
    # relativedelta clamps the day to the end of the target month
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.YEARLY: relativedelta(years=1),
}


def parse_frequency(frequency: Union[Frequency, str]) -> Frequency:
    """Coerce a stored frequency value to the enum, or raise CalculationError."""
    if isinstance(frequency, Frequency):
        return frequency
    try:
        return Frequency(str(frequency).strip().lower())
    except ValueError:
        raise CalculationError(frequency) from None


def next_occurrence(current_due: date, frequency: Union[Frequency, str]) -> date:
    """
    Return the next due date after current_due.

    The result is always strictly later than current_due.

    Raises:
        CalculationError: If frequency is not a known value, or the next
            date would fall after date.max
    """
    kind = parse_frequency(frequency)
    try:
        return current_due + _STEPS[kind]
    except (OverflowError, ValueError) as e:
        # timedelta overflows with OverflowError, relativedelta with ValueError
        raise CalculationError(
            frequency,
            f"No {kind.value} occurrence after {current_due.isoformat()}: {e}",
        ) from e
