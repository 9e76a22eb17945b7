"""
Invoice Reconciler

Chooses the one authoritative invoice value per card.

Provider bills, locally built invoices, credit-limit figures and raw
balances often disagree. Each invoice type has a fixed priority list and
the first available source wins:

    current:    open bill -> first future-due bill -> latest bill
                -> locally built current invoice -> matcher fallback
    next:       bill following the current one -> current
    used_total: used credit limit -> limit minus available
                -> abs(balance) -> current

DESIGN DECISION: Every reconciled value records its source and the
matching strategy behind it. Nothing is summed here: the aggregator adds
up enabled cards only.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional

from invoice_engine.billing.bills import select_current_bill, select_next_bill
from invoice_engine.models.dashboard import (
    CardMatch,
    DashboardSettings,
    InvoiceSource,
    InvoiceType,
    ReconciledInvoice,
)
from invoice_engine.models.finance import (
    CardAccount,
    CardInvoices,
    ConnectionMode,
    LimitImpact,
)
from invoice_engine.models.money import ZERO, round_cents, sum_money
from invoice_engine.tracing.logger import TraceLogger


_LOCAL_SOURCES = (InvoiceSource.TRANSACTIONS, InvoiceSource.MATCHER_FALLBACK)

# (amount, source, provider bill due date)
_Resolved = tuple[Decimal, InvoiceSource, Optional[dt.date]]


class InvoiceReconciler:
    """Reconciles card invoice values for one computation pass."""

    def __init__(
        self,
        settings: DashboardSettings,
        reference_date: dt.date,
        trace: Optional[TraceLogger] = None,
    ):
        self._settings = settings
        self._reference_date = reference_date
        self._trace = trace or TraceLogger()

    def is_enabled(self, card: CardAccount) -> bool:
        """Whether the card contributes to the dashboard total."""
        if not self._settings.is_card_enabled(card.id):
            return False
        if card.connection_mode == ConnectionMode.AUTO:
            return self._settings.include_open_finance
        return True

    def reconcile(
        self,
        card: CardAccount,
        match: CardMatch,
        invoices: Optional[CardInvoices] = None,
        invoice_type: InvoiceType = InvoiceType.CURRENT,
    ) -> ReconciledInvoice:
        """
        Authoritative value of one card for the requested invoice type.

        Args:
            card: The card being reconciled
            match: How the matcher resolved the card
            invoices: Locally built invoices, None when building failed
            invoice_type: Selected invoice; `use_total_limit` overrides it
        """
        if self._settings.use_total_limit:
            invoice_type = InvoiceType.USED_TOTAL

        if invoice_type == InvoiceType.USED_TOTAL:
            amount, source, due = self._used_total(card, match, invoices)
        elif invoice_type == InvoiceType.NEXT:
            amount, source, due = self._next(card, match, invoices)
        else:
            amount, source, due = self._current(card, match, invoices)

        if self._settings.use_full_limit and card.credit_limit is not None:
            self._trace.log_full_limit_override(
                card.id, str(amount), str(card.credit_limit),
            )
            amount, source = card.credit_limit, InvoiceSource.FULL_LIMIT
        elif source not in _LOCAL_SOURCES:
            self._trace.log_provider_value_used(
                card.id, invoice_type.value, source.value, str(amount),
            )

        return ReconciledInvoice(
            card_id=card.id,
            invoice_type=invoice_type,
            amount=round_cents(amount),
            source=source,
            strategy=match.strategy,
            enabled=self.is_enabled(card),
            bill_due_date=due,
        )

    def reconcile_all(
        self,
        cards: list[CardAccount],
        matches: dict[str, CardMatch],
        invoices: dict[str, CardInvoices],
        invoice_types: Optional[dict[str, InvoiceType]] = None,
    ) -> list[ReconciledInvoice]:
        """Reconcile every card, ordered by card id."""
        invoice_types = invoice_types or {}
        return [
            self.reconcile(
                card,
                matches[card.id],
                invoices.get(card.id),
                invoice_types.get(card.id, InvoiceType.CURRENT),
            )
            for card in sorted(cards, key=lambda c: c.id)
        ]

    @staticmethod
    def total(reconciled: list[ReconciledInvoice]) -> Decimal:
        """Sum of the enabled cards' invoice values."""
        return sum_money(r.amount for r in reconciled if r.enabled)

    @staticmethod
    def future_limit_impact(card: CardAccount, invoices: CardInvoices) -> LimitImpact:
        """
        Credit limit left now and after every known invoice is paid.

        A missing limit counts as zero. A zero or missing used figure falls
        back to abs(balance).
        """
        limit = card.credit_limit or ZERO
        used = card.used_credit_limit or abs(card.balance)
        committed = invoices.future_total
        return LimitImpact(
            card_id=card.id,
            available=round_cents(limit - used),
            committed=committed,
            after_closed=round_cents(
                limit - invoices.current_invoice.amount_due - committed
            ),
        )

    # =========================================================================
    # PRIORITY LISTS
    # =========================================================================

    def _current(
        self,
        card: CardAccount,
        match: CardMatch,
        invoices: Optional[CardInvoices],
    ) -> _Resolved:
        selected = select_current_bill(card.bills, self._reference_date)
        if selected is not None:
            bill, source = selected
            return abs(bill.total_amount), source, bill.due_date

        if invoices is not None and match.transactions:
            current = invoices.current_invoice
            return current.amount_due, InvoiceSource.TRANSACTIONS, None

        return match.fallback_amount or ZERO, InvoiceSource.MATCHER_FALLBACK, None

    def _next(
        self,
        card: CardAccount,
        match: CardMatch,
        invoices: Optional[CardInvoices],
    ) -> _Resolved:
        selected = select_current_bill(card.bills, self._reference_date)
        if selected is not None:
            following = select_next_bill(card.bills, selected[0])
            if following is not None:
                return (
                    abs(following.total_amount),
                    InvoiceSource.NEXT_BILL,
                    following.due_date,
                )
        return self._current(card, match, invoices)

    def _used_total(
        self,
        card: CardAccount,
        match: CardMatch,
        invoices: Optional[CardInvoices],
    ) -> _Resolved:
        if card.used_credit_limit is not None and card.used_credit_limit >= ZERO:
            return card.used_credit_limit, InvoiceSource.USED_CREDIT_LIMIT, None

        if card.credit_limit is not None and card.available_credit_limit is not None:
            return (
                card.credit_limit - card.available_credit_limit,
                InvoiceSource.LIMIT_DIFFERENCE,
                None,
            )

        if card.balance != ZERO:
            return abs(card.balance), InvoiceSource.BALANCE, None

        return self._current(card, match, invoices)
