"""
Money and date coercion helpers.

Every monetary field passes through `coerce_money` before it reaches a model,
so one corrupt record (NaN, None, "abc", "1e999999") folds into a sum as zero
instead of poisoning the whole total.
"""

import datetime as dt
import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0")
# Amounts at or above this are corrupt and cannot be safely rounded to cents
MAX_AMOUNT = Decimal("1e15")


def _bounded(value: Decimal) -> Optional[Decimal]:
    if not value.is_finite() or abs(value) >= MAX_AMOUNT:
        return None
    return value


def _to_decimal(value: Any) -> Optional[Decimal]:
    """Convert to a finite Decimal that rounds to cents, or None when that is impossible."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return _bounded(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return _bounded(Decimal(str(value)))
    if isinstance(value, int):
        return _bounded(Decimal(value))
    if isinstance(value, str):
        text = value.strip().replace(" ", "")
        if not text:
            return None
        # "1.234,56" and "39,90"
        if "," in text:
            text = text.replace(".", "").replace(",", ".")
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
        return _bounded(parsed)
    return None


def coerce_money(value: Any) -> Decimal:
    """Coerce any input to a Decimal; unusable values become zero."""
    parsed = _to_decimal(value)
    return ZERO if parsed is None else parsed


def coerce_optional_money(value: Any) -> Optional[Decimal]:
    """Like coerce_money, but unusable values mean "not reported"."""
    return _to_decimal(value)


def round_cents(value: Decimal) -> Decimal:
    """Round to the nearest cent."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Sum and round to the cent. Empty input yields zero."""
    total = ZERO
    for value in values:
        total += coerce_money(value)
    return round_cents(total)


def parse_date(value: Any) -> Optional[dt.date]:
    """
    Parse a transaction/bill date.

    Accepts date, datetime, "YYYY-MM-DD", "YYYY-MM" (first day) and full ISO
    timestamps (the calendar date of the timestamp is kept). Anything else
    returns None.
    """
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    try:
        if "T" in text:
            return dt.datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        if len(text) == 7:
            return dt.date.fromisoformat(f"{text}-01")
        return dt.date.fromisoformat(text[:10])
    except ValueError:
        return None


def month_key(value: dt.date) -> str:
    """YYYY-MM key of a date."""
    return f"{value.year:04d}-{value.month:02d}"
