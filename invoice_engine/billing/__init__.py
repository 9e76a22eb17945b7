"""Billing cycles, provider bill selection and locally built card invoices."""

from invoice_engine.billing.bills import select_current_bill, select_next_bill
from invoice_engine.billing.cycle import (
    CyclePeriod,
    InvoicePeriods,
    clamp_closing_day,
    closing_date_for_month,
    cycle_for_month,
    due_date_for_closing,
    invoice_month_key,
    invoice_periods,
    last_closing,
    next_closing,
    shift_month,
)
from invoice_engine.billing.invoice_builder import (
    InvoiceBuilder,
    is_card_payment,
    is_refund,
    parse_installment,
    to_invoice_item,
)

__all__ = [
    "CyclePeriod",
    "InvoiceBuilder",
    "InvoicePeriods",
    "clamp_closing_day",
    "closing_date_for_month",
    "cycle_for_month",
    "due_date_for_closing",
    "invoice_month_key",
    "invoice_periods",
    "is_card_payment",
    "is_refund",
    "last_closing",
    "next_closing",
    "parse_installment",
    "select_current_bill",
    "select_next_bill",
    "shift_month",
    "to_invoice_item",
]
