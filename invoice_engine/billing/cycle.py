"""
Billing Cycle Calculator

Closing and due-date arithmetic for credit cards.

A card closes on its closing day every month. A cycle is the half-open
interval (previous closing, closing]: a purchase made ON the closing day
still belongs to the cycle that closes that day.

DESIGN DECISION: Closing days are clamped to [1, 28], never rejected.
Every month has a 28th, so a card always yields a well-defined cycle and
"one month later" is always the same day of the month.
"""

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from invoice_engine.models.money import month_key

MIN_CLOSING_DAY = 1
MAX_CLOSING_DAY = 28
DEFAULT_CLOSING_DAY = 1
DUE_DAY_OFFSET = 10


class CyclePeriod(BaseModel):
    """One billing cycle: (period_start, period_end]."""
    model_config = ConfigDict(frozen=True)

    reference_month: str
    period_start: dt.date
    period_end: dt.date
    due_date: dt.date


class InvoicePeriods(BaseModel):
    """The closed, current and next cycles around a reference date."""
    model_config = ConfigDict(frozen=True)

    closing_day: int
    due_day: int
    closed: CyclePeriod
    current: CyclePeriod
    next: CyclePeriod


def clamp_closing_day(closing_day: Any, default: int = DEFAULT_CLOSING_DAY) -> int:
    """Clamp to [1, 28]; missing or non-numeric values use `default`."""
    if closing_day is None or isinstance(closing_day, bool):
        return default
    try:
        day = int(closing_day)
    except (TypeError, ValueError, OverflowError):
        return default
    return max(MIN_CLOSING_DAY, min(MAX_CLOSING_DAY, day))


def add_months(value: dt.date, months: int, day: int) -> dt.date:
    """Shift `value` by whole calendar months and land on `day` (<= 28)."""
    index = value.year * 12 + (value.month - 1) + months
    return dt.date(index // 12, index % 12 + 1, day)


def last_closing(reference_date: dt.date, closing_day: Any) -> dt.date:
    """
    Most recent closing date at or before `reference_date`.

    >>> last_closing(dt.date(2024, 6, 10), 15)
    datetime.date(2024, 5, 15)
    """
    day = clamp_closing_day(closing_day)
    this_month = reference_date.replace(day=day)
    if reference_date >= this_month:
        return this_month
    return add_months(this_month, -1, day)


def next_closing(last: dt.date, closing_day: Any) -> dt.date:
    """Closing date exactly one calendar month after `last`."""
    day = clamp_closing_day(closing_day)
    return add_months(last, 1, day)


def closing_date_for_month(reference_month: str, closing_day: Any) -> dt.date:
    """Closing date of the cycle identified by `reference_month` (YYYY-MM)."""
    day = clamp_closing_day(closing_day)
    first = dt.date.fromisoformat(f"{reference_month}-01")
    return first.replace(day=day)


def invoice_month_key(value: dt.date, closing_day: Any) -> str:
    """
    Reference month of the invoice a date falls into.

    Dates after the closing day roll into the next month's invoice.
    """
    day = clamp_closing_day(closing_day)
    if value.day > day:
        return month_key(add_months(value.replace(day=1), 1, 1))
    return month_key(value)


def resolve_due_day(closing_day: Any, due_day: Optional[int]) -> int:
    """Due day of the card; defaults to ten days after closing."""
    if due_day is None or due_day < 1:
        return min(clamp_closing_day(closing_day) + DUE_DAY_OFFSET, 28)
    return min(due_day, 28)


def due_date_for_closing(
    closing: dt.date,
    closing_day: Any,
    due_day: Optional[int] = None,
) -> dt.date:
    """
    Due date of the cycle that closes on `closing`.

    A due day on or before the closing day falls in the following month.
    """
    day = clamp_closing_day(closing_day)
    due = resolve_due_day(day, due_day)
    if due <= day:
        return add_months(closing.replace(day=1), 1, due)
    return closing.replace(day=due)


def cycle_for_month(
    reference_month: str,
    closing_day: Any,
    due_day: Optional[int] = None,
) -> CyclePeriod:
    """The cycle whose closing date falls in `reference_month`."""
    day = clamp_closing_day(closing_day)
    end = closing_date_for_month(reference_month, day)
    return CyclePeriod(
        reference_month=reference_month,
        period_start=add_months(end, -1, day),
        period_end=end,
        due_date=due_date_for_closing(end, day, due_day),
    )


def invoice_periods(
    reference_date: dt.date,
    closing_day: Any,
    due_day: Optional[int] = None,
) -> InvoicePeriods:
    """
    Closed, current and next cycles as of `reference_date`.

    The current cycle is (last_closing, next_closing]; the closed cycle is
    the one ending at last_closing.
    """
    day = clamp_closing_day(closing_day)
    last = last_closing(reference_date, day)
    upcoming = next_closing(last, day)
    return InvoicePeriods(
        closing_day=day,
        due_day=resolve_due_day(day, due_day),
        closed=cycle_for_month(month_key(last), day, due_day),
        current=cycle_for_month(month_key(upcoming), day, due_day),
        next=cycle_for_month(month_key(add_months(upcoming, 1, day)), day, due_day),
    )


def shift_month(reference_month: str, months: int) -> str:
    """Move a YYYY-MM key by whole months."""
    first = dt.date.fromisoformat(f"{reference_month}-01")
    return month_key(add_months(first, months, 1))
