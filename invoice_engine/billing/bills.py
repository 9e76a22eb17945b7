"""
Provider bill selection.

Providers report a list of bills per card without saying which one is
"current". These helpers pick one deterministically.
"""

import datetime as dt
from typing import Optional

from invoice_engine.models.dashboard import InvoiceSource
from invoice_engine.models.finance import Bill, BillState


def _by_due_date(bills: list[Bill]) -> list[Bill]:
    dated = [b for b in bills if b.due_date is not None]
    return sorted(sorted(dated, key=lambda b: b.id or ""), key=lambda b: b.due_date)


def select_current_bill(
    bills: list[Bill],
    reference_date: dt.date,
) -> Optional[tuple[Bill, InvoiceSource]]:
    """
    The bill that represents the current invoice, and how it was chosen.

    Priority: an open bill, then the first bill due on or after the
    reference date, then the latest known bill.
    """
    if not bills:
        return None

    ordered = _by_due_date(bills)
    open_bills = [b for b in ordered if b.state == BillState.OPEN]
    if not open_bills:
        open_bills = [b for b in bills if b.state == BillState.OPEN]
    if open_bills:
        return open_bills[0], InvoiceSource.OPEN_BILL

    for bill in ordered:
        if bill.due_date >= reference_date:
            return bill, InvoiceSource.FUTURE_BILL

    if ordered:
        return ordered[-1], InvoiceSource.LATEST_BILL
    return bills[-1], InvoiceSource.LATEST_BILL


def select_next_bill(bills: list[Bill], current: Bill) -> Optional[Bill]:
    """First bill due after `current`."""
    if current.due_date is None:
        return None
    for bill in _by_due_date(bills):
        if bill.due_date > current.due_date:
            return bill
    return None
