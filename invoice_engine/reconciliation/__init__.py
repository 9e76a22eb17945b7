"""
Reconciliation Package

Card matching, authoritative invoice values and subscription de-duplication.
"""

from invoice_engine.reconciliation.invoices import InvoiceReconciler
from invoice_engine.reconciliation.matcher import AccountTransactionMatcher
from invoice_engine.reconciliation.recurring import (
    RecurringExpenseReconciler,
    names_match,
    normalize_name,
)

__all__ = [
    "AccountTransactionMatcher",
    "InvoiceReconciler",
    "RecurringExpenseReconciler",
    "names_match",
    "normalize_name",
]
