"""
Recurring Expense Reconciler

Decides, per subscription and month, whether the subscription still has to
be projected as a future expense or was already paid.

A subscription counts as paid in a month when, in this order:
1. The month is in its `paid_months` (authoritative, nothing else is checked)
2. A checking transaction points back to it via `paid_subscription_id`
3. A checking transaction matches it by name and amount
4. An item of that month's card invoice matches it by name and amount

CRITICAL: Payment records and refund credits on a card invoice never count
as a match. Payments settle the invoice, not the subscription, and a refund
reverses a charge rather than paying one.
"""

import datetime as dt
import re
import unicodedata
from decimal import Decimal
from typing import Optional

from invoice_engine.config.settings import EngineSettings, get_settings
from invoice_engine.models.dashboard import ProjectionStatus, RecurringProjection
from invoice_engine.models.finance import (
    BillingCycle,
    CardInvoices,
    SubscriptionDefinition,
    Transaction,
)
from invoice_engine.models.money import ZERO, month_key, round_cents, sum_money
from invoice_engine.tracing.logger import TraceLogger


# Payment gateways prefixed to merchant names ("PAG*Spotify", "MP *Netflix")
GATEWAY_TOKENS = frozenset({
    "pix",
    "pag",
    "pagseguro",
    "pagseg",
    "mp",
    "mercadopago",
    "paypal",
    "stripe",
    "ebanx",
    "dlocal",
    "iugu",
    "picpay",
})

MIN_NAME_LENGTH = 3


def normalize_name(value: str) -> str:
    """
    Merchant name reduced to comparable words.

    >>> normalize_name("PAG*Spotify Brasil")
    'spotify brasil'
    """
    text = unicodedata.normalize("NFKD", value or "")
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    words = re.sub(r"[^a-z0-9]+", " ", text.lower()).split()
    while len(words) > 1 and words[0] in GATEWAY_TOKENS:
        words = words[1:]
    return " ".join(words)


def names_match(a: str, b: str) -> bool:
    """Either compacted name contains the other."""
    left = normalize_name(a).replace(" ", "")
    right = normalize_name(b).replace(" ", "")
    if not left or not right:
        return False
    if min(len(left), len(right)) < MIN_NAME_LENGTH:
        return False
    return left in right or right in left


class RecurringExpenseReconciler:
    """
    Projects subscriptions for a month without double counting the ones
    already paid.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        trace: Optional[TraceLogger] = None,
    ):
        self._settings = settings or get_settings().engine
        self._trace = trace or TraceLogger()

    def amounts_match(self, charged: Decimal, expected: Decimal) -> bool:
        """|charged - expected| within max(floor, |expected| * ratio)."""
        tolerance = max(
            self._settings.subscription_tolerance_floor,
            abs(expected) * self._settings.subscription_tolerance_ratio,
        )
        return abs(abs(charged) - abs(expected)) <= tolerance

    def _matches(self, subscription: SubscriptionDefinition, name: str, amount: Decimal) -> bool:
        return names_match(subscription.name, name) and self.amounts_match(
            amount, subscription.amount,
        )

    @staticmethod
    def _due_amount(subscription: SubscriptionDefinition, month: str) -> Optional[Decimal]:
        """Amount due in `month`, or None when a yearly charge is not due."""
        if subscription.billing_cycle != BillingCycle.YEARLY:
            return round_cents(abs(subscription.amount))
        anchor = subscription.last_payment_date
        if anchor is None:
            return round_cents(abs(subscription.amount) / 12)
        if int(month[5:7]) != anchor.month:
            return None
        return round_cents(abs(subscription.amount))

    def project(
        self,
        subscription: SubscriptionDefinition,
        month: str,
        transactions: list[Transaction],
        card_invoices: Optional[list[CardInvoices]] = None,
    ) -> RecurringProjection:
        """Projection of one subscription for one month."""
        if not subscription.is_active:
            return self._result(subscription, month, ProjectionStatus.INACTIVE)

        due = self._due_amount(subscription, month)
        if due is None:
            return self._result(subscription, month, ProjectionStatus.NOT_DUE)

        if subscription.is_paid_in(month):
            return self._suppressed(subscription, month, ProjectionStatus.PAID_EXPLICIT)

        checking = [
            tx for tx in transactions
            if not tx.is_card
            and tx.is_posted
            and tx.date is not None
            and month_key(tx.date) == month
        ]
        checking = sorted(checking, key=lambda t: (t.date, t.id))

        for tx in checking:
            if tx.paid_subscription_id == subscription.id:
                return self._suppressed(
                    subscription, month, ProjectionStatus.MATCHED_BACK_REFERENCE, tx.id,
                )

        for tx in checking:
            if tx.signed_amount < ZERO and self._matches(
                subscription, tx.description, tx.amount,
            ):
                return self._suppressed(
                    subscription, month, ProjectionStatus.MATCHED_CHECKING, tx.id,
                )

        for invoices in card_invoices or []:
            for invoice in invoices.invoices_for_month(month):
                for item in invoice.items:
                    if item.is_payment or item.is_refund:
                        continue
                    if self._matches(subscription, item.description, item.amount):
                        return self._suppressed(
                            subscription,
                            month,
                            ProjectionStatus.MATCHED_CARD,
                            item.transaction_id,
                        )

        self._trace.log_subscription_projected(subscription.id, month, str(due))
        return RecurringProjection(
            subscription_id=subscription.id,
            month=month,
            amount=due,
            status=ProjectionStatus.PROJECTED,
        )

    def project_all(
        self,
        subscriptions: list[SubscriptionDefinition],
        month: str,
        transactions: list[Transaction],
        card_invoices: Optional[list[CardInvoices]] = None,
    ) -> list[RecurringProjection]:
        """Projections of every subscription, ordered by id."""
        return [
            self.project(sub, month, transactions, card_invoices)
            for sub in sorted(subscriptions, key=lambda s: s.id)
        ]

    @staticmethod
    def total(projections: list[RecurringProjection]) -> Decimal:
        return sum_money(p.amount for p in projections)

    @staticmethod
    def mark_paid(subscription: SubscriptionDefinition, month: str) -> SubscriptionDefinition:
        """Copy of the subscription with `month` recorded as paid."""
        dt.date.fromisoformat(f"{month}-01")
        return subscription.model_copy(update={
            "paid_months": subscription.paid_months | {month},
        })

    def _suppressed(
        self,
        subscription: SubscriptionDefinition,
        month: str,
        status: ProjectionStatus,
        matched_transaction_id: Optional[str] = None,
    ) -> RecurringProjection:
        self._trace.log_subscription_suppressed(
            subscription.id, month, status.value, matched_transaction_id,
        )
        return self._result(subscription, month, status, matched_transaction_id)

    @staticmethod
    def _result(
        subscription: SubscriptionDefinition,
        month: str,
        status: ProjectionStatus,
        matched_transaction_id: Optional[str] = None,
    ) -> RecurringProjection:
        return RecurringProjection(
            subscription_id=subscription.id,
            month=month,
            amount=ZERO,
            status=status,
            matched_transaction_id=matched_transaction_id,
        )
