"""
Stats Aggregator

Turns one dashboard snapshot into the five dashboard figures.

Every transaction in the window (reference month, posted only) lands in
exactly one bucket. The first rule that applies wins:
1. Refund marker                          -> REFUND
2. Internal transfer or bill payment      -> EXCLUDED
3. Expense keyword in the description     -> EXPENSE
4. Declared type                          -> INCOME / EXPENSE
5. Amount sign                            -> INCOME / EXPENSE

Card-kind expenses never reach the base expenses: the card contributes
through its reconciled invoice instead, so nothing is counted twice.

DESIGN DECISION: This is a pure function of its inputs. Callers that want
to avoid recomputation key a cache by the snapshot content (see engine.py).
"""

import datetime as dt
import re
from decimal import Decimal
from enum import Enum
from typing import Optional

from invoice_engine.billing.invoice_builder import (
    InvoiceBuilder,
    is_card_payment,
    is_refund,
)
from invoice_engine.config.settings import (
    EngineSettings,
    TaxSettings,
    get_settings,
)
from invoice_engine.income.projection import IncomeProjectionCalculator
from invoice_engine.models.dashboard import (
    DashboardResult,
    DashboardSettings,
    DashboardSnapshot,
    DashboardStats,
    InvoiceType,
)
from invoice_engine.models.finance import (
    CardAccount,
    CardInvoices,
    CheckingAccount,
    ConnectionMode,
    SalaryProfile,
    SubscriptionDefinition,
    Transaction,
    TransactionType,
)
from invoice_engine.models.money import ZERO, month_key, round_cents, sum_money
from invoice_engine.reconciliation.invoices import InvoiceReconciler
from invoice_engine.reconciliation.matcher import AccountTransactionMatcher
from invoice_engine.reconciliation.recurring import RecurringExpenseReconciler
from invoice_engine.tracing.logger import TraceLogger


TRANSFER_KEYWORDS = (
    "transferencia entre contas",
    "transferência entre contas",
    "transf entre contas",
    "transferencia propria",
    "transferência própria",
    "mesma titularidade",
    "aplicacao",
    "aplicação",
    "resgate",
)

EXPENSE_KEYWORDS = (
    "compra",
    "pix enviado",
    "boleto",
    "tarifa",
    "saque",
    "debito automatico",
    "débito automático",
)

# Checking-side phrases only; "pgto" alone also prefixes salary credits
BILL_PAYMENT_KEYWORDS = (
    "pagamento de fatura",
    "pagamento fatura",
    "pag fatura",
    "pgto fatura",
    "pgto cartao",
    "pgto cartão",
)

# Short tokens that would match inside other words
_EXPENSE_WORDS_RE = re.compile(r"\b(iof)\b")


class Bucket(str, Enum):
    """Where a windowed transaction is counted."""
    INCOME = "income"
    EXPENSE = "expense"
    CARD_EXPENSE = "card_expense"
    REFUND = "refund"
    EXCLUDED = "excluded"


def _is_transfer(tx: Transaction) -> bool:
    if tx.is_card:
        if is_card_payment(tx):
            return True
    elif _is_bill_payment(tx):
        return True
    description = tx.description.lower()
    return any(kw in description for kw in TRANSFER_KEYWORDS)


def _is_bill_payment(tx: Transaction) -> bool:
    """Checking outflow that pays a card bill."""
    if tx.signed_amount >= ZERO:
        return False
    description = tx.description.lower()
    return any(kw in description for kw in BILL_PAYMENT_KEYWORDS)


def classify(tx: Transaction) -> Bucket:
    """Bucket of one transaction; see the module docstring for precedence."""
    if is_refund(tx):
        return Bucket.REFUND
    if _is_transfer(tx):
        return Bucket.EXCLUDED

    description = tx.description.lower()
    if (
        any(kw in description for kw in EXPENSE_KEYWORDS)
        or _EXPENSE_WORDS_RE.search(description)
    ):
        expense = True
    elif tx.type is not None:
        expense = tx.type == TransactionType.EXPENSE
    elif tx.amount != ZERO:
        expense = tx.amount < ZERO
    else:
        return Bucket.EXCLUDED

    if tx.is_card:
        # Card credits that are neither refunds nor payments still reduce spending
        return Bucket.CARD_EXPENSE if expense else Bucket.REFUND
    return Bucket.EXPENSE if expense else Bucket.INCOME


class StatsAggregator:
    """
    Runs one full computation pass over a snapshot.

    Usage:
        aggregator = StatsAggregator()
        result = aggregator.aggregate(snapshot)
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        tax: Optional[TaxSettings] = None,
    ):
        self._settings = settings or get_settings().engine
        self._tax = tax or get_settings().tax

    def window(
        self,
        snapshot: DashboardSnapshot,
    ) -> list[Transaction]:
        """Posted transactions of the reference month."""
        month = snapshot.effective_month
        include_imported = snapshot.settings.include_open_finance
        return [
            tx for tx in snapshot.transactions
            if tx.is_posted
            and tx.date is not None
            and month_key(tx.date) == month
            and (include_imported or not tx.is_imported)
        ]

    @staticmethod
    def provider_balance(
        accounts: list[CheckingAccount],
        settings: DashboardSettings,
    ) -> Decimal:
        """Sum of the checking balances the user chose to include."""
        return sum_money(
            account.balance for account in accounts
            if settings.include_open_finance
            or account.connection_mode != ConnectionMode.AUTO
        )

    def aggregate(
        self,
        snapshot: DashboardSnapshot,
        trace: Optional[TraceLogger] = None,
    ) -> DashboardResult:
        """Compute every dashboard figure for the snapshot."""
        trace = trace or TraceLogger()
        settings = snapshot.settings
        month = snapshot.effective_month
        reference_date = snapshot.reference_date
        cards = sorted(snapshot.cards, key=lambda c: c.id)

        # Cards
        matcher = AccountTransactionMatcher(
            cards, snapshot.transactions, reference_date, month, trace,
        )
        matches = {match.card_id: match for match in matcher.match_all()}

        builder = InvoiceBuilder(self._settings)
        invoices: dict[str, CardInvoices] = {}
        for card in cards:
            built = builder.build_invoices(
                card, matches[card.id].transactions, reference_date, trace,
            )
            if built.success and built.invoices is not None:
                invoices[card.id] = built.invoices

        reconciler = InvoiceReconciler(settings, reference_date, trace)
        reconciled = reconciler.reconcile_all(
            cards, matches, invoices, snapshot.invoice_types,
        )
        card_spending = reconciler.total(reconciled)
        limit_impacts = [
            reconciler.future_limit_impact(card, invoices[card.id])
            for card in cards
            if card.id in invoices
        ]

        # Projections
        recurring = RecurringExpenseReconciler(self._settings, trace)
        projections = recurring.project_all(
            snapshot.subscriptions,
            month,
            snapshot.transactions,
            [invoices[card_id] for card_id in sorted(invoices)],
        )
        projected_expense = recurring.total(projections)

        income_calculator = IncomeProjectionCalculator(self._tax)
        income = (
            income_calculator.breakdown(snapshot.salary)
            if snapshot.salary is not None
            else None
        )
        projected_income = income_calculator.projected_income(
            snapshot.salary, month, reference_date,
        )

        # Window totals
        totals = {bucket: ZERO for bucket in Bucket}
        for tx in self.window(snapshot):
            bucket = classify(tx)
            if bucket == Bucket.REFUND and tx.is_card:
                # Already a credit on the card invoice
                continue
            totals[bucket] += abs(tx.amount)

        total_income = round_cents(totals[Bucket.INCOME])
        base_expense = round_cents(max(totals[Bucket.EXPENSE] - totals[Bucket.REFUND], ZERO))
        total_expense = base_expense
        if settings.include_credit_card:
            total_expense = round_cents(base_expense + card_spending)

        provider_balance = self.provider_balance(snapshot.checking_accounts, settings)
        if settings.include_checking:
            total_balance = provider_balance + projected_income - projected_expense
        else:
            total_balance = total_income - total_expense

        stats = DashboardStats(
            total_income=total_income,
            total_expense=total_expense,
            total_balance=round_cents(total_balance),
            monthly_savings=round_cents(total_income - total_expense),
            credit_card_spending=card_spending,
        )

        trace.log_computation_completed(month, len(cards), len(snapshot.transactions))
        return DashboardResult(
            reference_month=month,
            stats=stats,
            card_invoices=[invoices[card_id] for card_id in sorted(invoices)],
            reconciled_invoices=reconciled,
            limit_impacts=limit_impacts,
            projections=projections,
            income=income,
            projected_income=projected_income,
            projected_expense=projected_expense,
            provider_balance=provider_balance,
        )


def aggregate_dashboard(
    transactions: list[Transaction],
    cards: list[CardAccount],
    subscriptions: list[SubscriptionDefinition],
    settings: DashboardSettings,
    reference_date: dt.date,
    checking_accounts: Optional[list[CheckingAccount]] = None,
    salary: Optional[SalaryProfile] = None,
    reference_month: Optional[str] = None,
    invoice_types: Optional[dict[str, InvoiceType]] = None,
    trace: Optional[TraceLogger] = None,
) -> DashboardResult:
    """
    Functional entry point: same inputs, same result.

    Uses the configured engine and tax settings.
    """
    snapshot = DashboardSnapshot(
        reference_date=reference_date,
        reference_month=reference_month,
        transactions=transactions,
        cards=cards,
        checking_accounts=checking_accounts or [],
        subscriptions=subscriptions,
        settings=settings,
        salary=salary,
        invoice_types=invoice_types or {},
    )
    return StatsAggregator().aggregate(snapshot, trace)
