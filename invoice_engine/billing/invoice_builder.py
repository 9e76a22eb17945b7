"""
Invoice Builder

Buckets a card's transactions into billing cycles and sums them.

RULES:
1. Only posted transactions count (projected installments excepted)
2. Bill payments are advisory: shown on the closed invoice, never summed
3. Refunds and chargebacks are credits that reduce the invoice
4. An explicit manual invoice month beats date-based placement
5. Remaining installments of a purchase are projected into future invoices

DESIGN DECISION: `build_invoices` returns an InvoiceBuildResult instead of
raising. A card whose invoices cannot be built still shows up on the
dashboard through provider data.
"""

import datetime as dt
import re
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional

from invoice_engine.billing.cycle import (
    CyclePeriod,
    InvoicePeriods,
    clamp_closing_day,
    cycle_for_month,
    invoice_month_key,
    invoice_periods,
    last_closing,
    next_closing,
    shift_month,
)
from invoice_engine.config.settings import EngineSettings, get_settings
from invoice_engine.errors import InvoiceBuildError
from invoice_engine.models.finance import (
    Bill,
    BillState,
    CardAccount,
    CardInvoices,
    Invoice,
    InvoiceBuildResult,
    InvoiceForecast,
    InvoiceItem,
    InvoiceStatus,
    InvoiceSummary,
    Transaction,
    TransactionType,
)
from invoice_engine.models.money import ZERO, month_key, sum_money
from invoice_engine.tracing.logger import TraceLogger


PAYMENT_KEYWORDS = (
    "pagamento de fatura",
    "pagamento fatura",
    "pagamento recebido",
    "credit card payment",
    "pag fatura",
    "pgto fatura",
    "pgto",
)

REFUND_KEYWORDS = (
    "estorno",
    "reembolso",
    "devolução",
    "devolucao",
    "cancelamento",
    "cancelado",
    "refund",
    "chargeback",
    "cashback",
)

REFUND_CATEGORIES = ("reembolso", "refund")

# "COMPRA 3/10"; a trailing "/2024" means a date, not an installment
_INSTALLMENT_RE = re.compile(r"(?<![\d/])(\d{1,2})\s*/\s*(\d{1,2})(?![\d/])")


def is_card_payment(tx: Transaction) -> bool:
    """
    True when the transaction pays a card bill.

    An explicit payment description wins over refund categories, except
    for reversed payments ("estorno de pagamento").
    """
    description = tx.description.lower()
    category = tx.category.lower()
    if not any(kw in description or kw in category for kw in PAYMENT_KEYWORDS):
        return False
    return "estorno" not in description and "cancelamento" not in description


def is_refund(tx: Transaction) -> bool:
    """True for refunds, chargebacks and cashback credits."""
    if is_card_payment(tx):
        return False
    if tx.is_refund:
        return True

    category = tx.category.lower()
    if tx.type == TransactionType.INCOME and category in REFUND_CATEGORIES:
        return True

    description = tx.description.lower()
    return any(kw in description or kw in category for kw in REFUND_KEYWORDS)


def parse_installment(tx: Transaction) -> Optional[tuple[int, int]]:
    """(number, total) of an installment purchase, or None."""
    if tx.total_installments and tx.total_installments > 1:
        number = tx.installment_number or 1
        if number <= tx.total_installments:
            return number, tx.total_installments
        return None

    match = _INSTALLMENT_RE.search(tx.description)
    if not match:
        return None
    number, total = int(match.group(1)), int(match.group(2))
    if 0 < number <= total and total > 1:
        return number, total
    return None


def _series_name(description: str) -> str:
    """Description of an installment purchase without its "N/M" marker."""
    text = _INSTALLMENT_RE.sub(" ", description.lower())
    text = re.sub(r"[^a-z0-9]+", " ", text)
    return " ".join(text.split())


def _sort_items(items: Iterable[InvoiceItem]) -> list[InvoiceItem]:
    """Date descending, ties by transaction id."""
    by_id = sorted(items, key=lambda i: i.transaction_id)
    return sorted(by_id, key=lambda i: i.date or dt.date.min, reverse=True)


def to_invoice_item(tx: Transaction, is_projected: bool = False) -> InvoiceItem:
    """
    Convert a card transaction to an invoice line.

    Expenses are negative. Payments and refunds are positive; only refunds
    count toward the total.
    """
    payment = is_card_payment(tx)
    refund = not payment and is_refund(tx)
    credit = payment or refund
    installment = parse_installment(tx)

    return InvoiceItem(
        transaction_id=tx.id,
        description=tx.description,
        amount=abs(tx.amount) if credit else -abs(tx.amount),
        date=tx.date,
        category=tx.category,
        type=TransactionType.INCOME if credit else TransactionType.EXPENSE,
        is_payment=payment,
        is_refund=refund,
        is_projected=is_projected or tx.is_projected,
        installment_number=installment[0] if installment else None,
        total_installments=installment[1] if installment else None,
    )


class InvoiceBuilder:
    """
    Builds the closed, current and future invoices of a card.

    Stateless apart from its settings; one instance can serve every card
    of a computation pass.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self._settings = settings or get_settings().engine

    # =========================================================================
    # SUMMARY
    # =========================================================================

    def calculate_invoice_summary(
        self,
        transactions: list[Transaction],
        closing_day: Optional[int],
        reference_date: dt.date,
        trace: Optional[TraceLogger] = None,
    ) -> InvoiceSummary:
        """
        Current and statement balance of a card as of `reference_date`.

        current_balance sums every posted transaction up to the reference
        date; statement_balance only those in (last_closing, reference_date].
        """
        trace = trace or TraceLogger()
        day = clamp_closing_day(closing_day, self._settings.default_closing_day)
        last = last_closing(reference_date, day)
        upcoming = next_closing(last, day)

        posted = []
        for tx in transactions:
            if not tx.is_posted:
                continue
            if tx.date is None:
                trace.log_date_unparsable(tx.id, None)
                continue
            if tx.date <= reference_date:
                posted.append(tx)

        in_cycle = [tx for tx in posted if last < tx.date <= reference_date]
        in_cycle = sorted(in_cycle, key=lambda t: t.id)
        in_cycle = sorted(in_cycle, key=lambda t: t.date, reverse=True)

        return InvoiceSummary(
            current_balance=sum_money(tx.signed_amount for tx in posted),
            statement_balance=sum_money(tx.signed_amount for tx in in_cycle),
            transactions_in_cycle=in_cycle,
            last_closing_date=last,
            next_closing_date=upcoming,
        )

    # =========================================================================
    # INVOICES
    # =========================================================================

    def build_invoices(
        self,
        card: CardAccount,
        transactions: list[Transaction],
        reference_date: dt.date,
        trace: Optional[TraceLogger] = None,
    ) -> InvoiceBuildResult:
        """
        Build every invoice of `card` from the transactions attributed to it.

        Never raises: a failure is reported in the result and traced.
        """
        trace = trace or TraceLogger()
        try:
            invoices = self._build(card, transactions, reference_date, trace)
        except Exception as e:
            trace.log_invoice_build_failed(card.id, str(e))
            return InvoiceBuildResult(
                card_id=card.id,
                success=False,
                error_message=str(e),
            )

        trace.log_invoice_built(
            card.id,
            invoices.current_invoice.reference_month,
            sum(len(inv.items) for inv in invoices.all_invoices()),
        )
        return InvoiceBuildResult(card_id=card.id, success=True, invoices=invoices)

    # =========================================================================
    # FORECAST
    # =========================================================================

    def forecast(
        self,
        invoices: CardInvoices,
        reference_date: dt.date,
        months_ahead: Optional[int] = None,
    ) -> list[InvoiceForecast]:
        """
        Month-by-month outlook starting at the current invoice.

        Months without an invoice are padded with empty entries, so the
        outlook always spans `months_ahead` months from the reference month
        (the configured projection horizon by default).
        """
        horizon = (
            self._settings.future_invoice_months
            if months_ahead is None
            else max(months_ahead, 0)
        )
        by_month: dict[str, InvoiceForecast] = {}
        for invoice in [invoices.current_invoice, *invoices.future_invoices]:
            by_month.setdefault(invoice.reference_month, _forecast_entry(invoice))

        start = month_key(reference_date)
        for offset in range(horizon):
            month = shift_month(start, offset)
            by_month.setdefault(month, InvoiceForecast(month=month))

        return [by_month[month] for month in sorted(by_month)][:horizon]

    def _closing_day(self, card: CardAccount, trace: TraceLogger) -> int:
        day = clamp_closing_day(card.closing_day, self._settings.default_closing_day)
        if card.closing_day != day:
            trace.log_closing_day_defaulted(card.id, card.closing_day, day)
        return day

    def _build(
        self,
        card: CardAccount,
        transactions: list[Transaction],
        reference_date: dt.date,
        trace: TraceLogger,
    ) -> CardInvoices:
        if not card.id:
            raise InvoiceBuildError("Card has no id")

        closing_day = self._closing_day(card, trace)
        periods = invoice_periods(reference_date, closing_day, card.due_day)
        horizon = shift_month(
            periods.current.reference_month,
            self._settings.future_invoice_months,
        )

        buckets: dict[str, list[InvoiceItem]] = defaultdict(list)
        payments: list[Transaction] = []
        installments: list[tuple[Transaction, str, int, int]] = []
        seen_installments: set[tuple[str, Decimal, int]] = set()

        for tx in transactions:
            if not tx.is_posted and not tx.is_projected:
                continue

            if is_card_payment(tx):
                if tx.date is not None:
                    payments.append(tx)
                continue

            key = self._placement_key(tx, closing_day)
            if key is None:
                trace.log_date_unparsable(tx.id, tx.date)
                continue

            target = self._target_month(
                key, periods, bool(tx.manual_invoice_month), horizon,
            )
            if target is not None:
                buckets[target].append(to_invoice_item(tx))

            installment = parse_installment(tx)
            if installment is not None:
                number, total = installment
                seen_installments.add((_series_name(tx.description), abs(tx.amount), number))
                if not tx.is_projected:
                    installments.append((tx, key, number, total))

        self._project_installments(
            installments, seen_installments, periods, horizon, buckets,
        )

        closed_items = list(buckets.pop(periods.closed.reference_month, []))
        payment = self._payment_for_closed(payments, periods)
        if payment is not None:
            closed_items.append(to_invoice_item(payment))

        current_items = buckets.pop(periods.current.reference_month, [])

        closed = self._make_invoice(
            card, periods.closed, closed_items, InvoiceStatus.CLOSED,
        )
        closed = closed.model_copy(update={
            "status": self._closed_status(card, closed, reference_date),
        })

        future = [
            self._make_invoice(
                card,
                cycle_for_month(month, periods.closing_day, card.due_day),
                items,
                InvoiceStatus.FUTURE,
            )
            for month, items in sorted(buckets.items())
            if month > periods.current.reference_month
        ]

        return CardInvoices(
            card_id=card.id,
            closed_invoice=closed,
            current_invoice=self._make_invoice(
                card, periods.current, current_items, InvoiceStatus.OPEN,
            ),
            future_invoices=future,
        )

    def _placement_key(self, tx: Transaction, closing_day: int) -> Optional[str]:
        if tx.manual_invoice_month:
            return tx.manual_invoice_month
        if tx.is_projected and tx.invoice_month_key:
            return tx.invoice_month_key
        if tx.date is None:
            return None
        return invoice_month_key(tx.date, closing_day)

    @staticmethod
    def _target_month(
        key: str,
        periods: InvoicePeriods,
        manual: bool,
        horizon: str,
    ) -> Optional[str]:
        """
        Invoice month a placement key lands in.

        Older cycles are already settled and dropped, except manual
        placements which are kept on the closed invoice.
        """
        if key > horizon:
            return None
        if key >= periods.closed.reference_month:
            return key
        if manual:
            return periods.closed.reference_month
        return None

    def _project_installments(
        self,
        installments: list[tuple[Transaction, str, int, int]],
        seen: set[tuple[str, Decimal, int]],
        periods: InvoicePeriods,
        horizon: str,
        buckets: dict[str, list[InvoiceItem]],
    ) -> None:
        """Add the installments not yet posted as projected items."""
        for tx, key, number, total in installments:
            series = _series_name(tx.description)
            for offset in range(1, total - number + 1):
                upcoming = number + offset
                if (series, abs(tx.amount), upcoming) in seen:
                    continue
                seen.add((series, abs(tx.amount), upcoming))

                target = self._target_month(
                    shift_month(key, offset), periods, False, horizon,
                )
                if target is None:
                    continue
                buckets[target].append(InvoiceItem(
                    transaction_id=f"proj_{tx.id}_{upcoming}",
                    description=tx.description,
                    amount=-abs(tx.amount),
                    date=None,
                    category=tx.category,
                    type=TransactionType.EXPENSE,
                    is_projected=True,
                    installment_number=upcoming,
                    total_installments=total,
                ))

    @staticmethod
    def _payment_for_closed(
        payments: list[Transaction],
        periods: InvoicePeriods,
    ) -> Optional[Transaction]:
        """
        The payment that settles the closed invoice.

        Made during the current cycle, or after the closed cycle ended and
        up to its due date.
        """
        ordered = sorted(sorted(payments, key=lambda t: t.id), key=lambda t: t.date)
        current = periods.current
        for tx in ordered:
            if current.period_start < tx.date <= current.period_end:
                return tx
        closed = periods.closed
        for tx in ordered:
            if closed.period_end < tx.date <= closed.due_date:
                return tx
        return None

    @staticmethod
    def _make_invoice(
        card: CardAccount,
        cycle: CyclePeriod,
        items: list[InvoiceItem],
        status: InvoiceStatus,
    ) -> Invoice:
        return Invoice(
            id=f"{card.id}_{cycle.reference_month}",
            card_id=card.id,
            reference_month=cycle.reference_month,
            status=status,
            period_start=cycle.period_start,
            period_end=cycle.period_end,
            due_date=cycle.due_date,
            total_amount=sum_money(i.amount for i in items if not i.is_payment),
            items=_sort_items(items),
        )

    def _closed_status(
        self,
        card: CardAccount,
        closed: Invoice,
        reference_date: dt.date,
    ) -> InvoiceStatus:
        bill = _bill_for_invoice(card.bills, closed)
        if bill is not None:
            if bill.state == BillState.CLOSED:
                return InvoiceStatus.PAID
            total = bill.total_amount or closed.amount_due
            threshold = total * self._settings.paid_ratio_threshold
            if bill.paid_amount > ZERO and bill.paid_amount >= threshold:
                return InvoiceStatus.PAID
        if closed.due_date is not None and closed.due_date < reference_date:
            return InvoiceStatus.OVERDUE
        return InvoiceStatus.CLOSED


def _bill_for_invoice(bills: list[Bill], invoice: Invoice) -> Optional[Bill]:
    """Provider bill that closes on, or falls due in the month of, the invoice."""
    for bill in bills:
        if bill.close_date is not None and bill.close_date == invoice.period_end:
            return bill
    if invoice.due_date is None:
        return None
    due_month = month_key(invoice.due_date)
    for bill in bills:
        if bill.due_date is not None and month_key(bill.due_date) == due_month:
            return bill
    return None


def _forecast_entry(invoice: Invoice) -> InvoiceForecast:
    purchases = [item for item in invoice.items if not item.is_payment]
    installments = [
        item for item in purchases
        if item.total_installments is not None and item.total_installments > 1
    ]
    return InvoiceForecast(
        month=invoice.reference_month,
        total=invoice.amount_due,
        installments_count=len(installments),
        new_purchases_count=len(purchases) - len(installments),
        items=invoice.items,
    )
