"""
Core Finance Models for the Invoice Engine

These models define the schemas of every record the engine reads:
transactions, card accounts with their provider bills, subscriptions and
salary profiles, plus the invoices the engine computes from them.

DESIGN DECISION: Input records are frozen. One computation pass works on an
immutable snapshot, which is what makes results deterministic and safe to
memoise.

DESIGN DECISION: Records accept both snake_case names and the camelCase keys
produced by the ingestion layer (accountId, closingDay, paidMonths...).
Monetary fields never reject a value: anything unusable becomes zero.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

from invoice_engine.models.money import (
    ZERO,
    coerce_money,
    coerce_optional_money,
    month_key,
    parse_date,
    sum_money,
)


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


Money = Annotated[Decimal, BeforeValidator(coerce_money)]
OptionalMoney = Annotated[Optional[Decimal], BeforeValidator(coerce_optional_money)]
LenientDate = Annotated[Optional[dt.date], BeforeValidator(parse_date)]
Text = Annotated[str, BeforeValidator(_none_to_empty)]


RECORD_CONFIG = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
    coerce_numbers_to_str=True,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction as declared by its source."""
    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatus(str, Enum):
    """
    Settlement status.

    CRITICAL: Pending transactions never contribute to any balance.
    """
    POSTED = "posted"
    PENDING = "pending"


class TransactionKind(str, Enum):
    """
    Which kind of account produced the transaction.

    Assigned once at ingestion. Downstream code branches on this value
    instead of re-reading free-text account types.
    """
    CHECKING = "checking"
    CREDIT_CARD = "credit_card"
    SAVINGS = "savings"
    MANUAL_ADJUSTMENT = "manual_adjustment"


class ConnectionMode(str, Enum):
    """How an account is kept up to date."""
    MANUAL = "manual"
    AUTO = "auto"  # Open-finance aggregator


class BillState(str, Enum):
    """State of a provider-reported bill."""
    OPEN = "open"
    CLOSED = "closed"
    FUTURE = "future"


class InvoiceStatus(str, Enum):
    """Status of a computed invoice."""
    OPEN = "open"
    CLOSED = "closed"
    FUTURE = "future"
    OVERDUE = "overdue"
    PAID = "paid"


class BillingCycle(str, Enum):
    """Subscription billing cycle."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    ACTIVE = "active"
    CANCELED = "canceled"


class DeductionKind(str, Enum):
    """How a custom payroll deduction is expressed."""
    PERCENT = "percent"
    FIXED = "fixed"


def _lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


# =============================================================================
# INPUT RECORDS
# =============================================================================

class Transaction(BaseModel):
    """
    A single money movement, manual or imported.

    `amount` may be signed or unsigned. When `type` is present it decides
    the sign (see `signed_amount`); otherwise the stored sign is used as-is.
    A date that cannot be parsed is kept as None, which excludes the record
    from cycle assignment without rejecting it.
    """
    model_config = RECORD_CONFIG

    id: str
    date: LenientDate = None
    description: Text = ""
    amount: Money = ZERO
    category: Text = ""
    type: Optional[TransactionType] = None
    kind: TransactionKind = TransactionKind.CHECKING
    status: TransactionStatus = TransactionStatus.POSTED

    account_id: Optional[str] = None
    card_id: Optional[str] = None

    # Invoice linkage
    invoice_month_key: Optional[str] = None
    invoice_due_date: LenientDate = None
    is_projected: bool = False
    manual_invoice_month: Optional[str] = None

    # Installments ("COMPRA 3/10")
    installment_number: Optional[int] = Field(default=None, ge=1)
    total_installments: Optional[int] = Field(default=None, ge=1)

    # Flags set by the user or the ingestion layer
    is_refund: bool = False
    paid_subscription_id: Optional[str] = None
    import_source: Optional[str] = None

    @field_validator('type', 'kind', mode='before')
    @classmethod
    def normalize_enum_case(cls, v: Any) -> Any:
        return _lower(v)

    @field_validator('invoice_month_key', 'manual_invoice_month', mode='before')
    @classmethod
    def lenient_month(cls, v: Any) -> Optional[str]:
        """Keep well-formed YYYY-MM keys only; anything else means unset."""
        if not isinstance(v, str) or len(v.strip()) != 7:
            return None
        parsed = parse_date(v)
        return month_key(parsed) if parsed else None

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        """Legacy records use `completed` for settled transactions."""
        v = _lower(v)
        if v in ("completed", "settled", None):
            return TransactionStatus.POSTED
        return v

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED

    @property
    def is_card(self) -> bool:
        return self.kind == TransactionKind.CREDIT_CARD

    @property
    def is_imported(self) -> bool:
        return bool(self.import_source)

    @property
    def signed_amount(self) -> Decimal:
        """Expenses negative, income positive."""
        if self.type == TransactionType.EXPENSE:
            return -abs(self.amount)
        if self.type == TransactionType.INCOME:
            return abs(self.amount)
        return self.amount

    @property
    def linked_account_ids(self) -> tuple[str, ...]:
        """Explicit account references, card id first."""
        return tuple(
            ref for ref in (self.card_id, self.account_id) if ref
        )


class Bill(BaseModel):
    """A bill summary reported by the card provider."""
    model_config = RECORD_CONFIG

    id: Optional[str] = None
    due_date: LenientDate = None
    close_date: LenientDate = None
    total_amount: Money = ZERO
    paid_amount: Money = ZERO
    state: Optional[BillState] = None

    @field_validator('state', mode='before')
    @classmethod
    def normalize_state(cls, v: Any) -> Any:
        return _lower(v)


class CardAccount(BaseModel):
    """
    A credit card with its provider data.

    Limits are optional: None means "the provider did not report it",
    which is different from a reported zero.
    """
    model_config = RECORD_CONFIG

    id: str
    name: Text = ""
    closing_day: Optional[int] = None
    due_day: Optional[int] = None

    credit_limit: OptionalMoney = None
    available_credit_limit: OptionalMoney = None
    used_credit_limit: OptionalMoney = None
    balance: Money = ZERO

    connection_mode: ConnectionMode = ConnectionMode.MANUAL
    bills: list[Bill] = Field(default_factory=list)

    @field_validator('closing_day', 'due_day', mode='before')
    @classmethod
    def lenient_day(cls, v: Any) -> Optional[int]:
        """Unusable days become None and are defaulted downstream."""
        if v is None or isinstance(v, bool):
            return None
        try:
            return int(float(v))
        except (TypeError, ValueError, OverflowError):
            return None

    @field_validator('connection_mode', mode='before')
    @classmethod
    def normalize_mode(cls, v: Any) -> Any:
        return _lower(v) or ConnectionMode.MANUAL

    @property
    def has_provider_data(self) -> bool:
        return bool(self.bills) or self.balance != ZERO


class CheckingAccount(BaseModel):
    """A checking or savings account; only its balance matters here."""
    model_config = RECORD_CONFIG

    id: str
    name: Text = ""
    balance: Money = ZERO
    connection_mode: ConnectionMode = ConnectionMode.MANUAL

    @field_validator('connection_mode', mode='before')
    @classmethod
    def normalize_mode(cls, v: Any) -> Any:
        return _lower(v) or ConnectionMode.MANUAL


class SubscriptionDefinition(BaseModel):
    """
    A recurring expense the user tracks.

    `paid_months` is the authoritative suppression record: months listed
    there are never projected, whatever the transactions say.
    """
    model_config = RECORD_CONFIG

    id: str
    name: Text
    amount: Money = ZERO
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    paid_months: frozenset[str] = Field(default_factory=frozenset)
    last_payment_date: LenientDate = None
    category: Text = ""

    @field_validator('billing_cycle', mode='before')
    @classmethod
    def normalize_cycle(cls, v: Any) -> Any:
        v = _lower(v)
        return BillingCycle.YEARLY if v in ("annual", "yearly") else v

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        v = _lower(v)
        return SubscriptionStatus.CANCELED if v == "cancelled" else v

    @field_validator('paid_months', mode='before')
    @classmethod
    def normalize_paid_months(cls, v: Any) -> Any:
        if v is None:
            return frozenset()
        return v

    @field_serializer('paid_months')
    def serialize_paid_months(self, v: frozenset[str]) -> list[str]:
        return sorted(v)

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def is_paid_in(self, month: str) -> bool:
        return month in self.paid_months


class DeductionRule(BaseModel):
    """A custom payroll deduction (meal voucher, health plan...)."""
    model_config = RECORD_CONFIG

    name: Text = ""
    value: Money = ZERO
    kind: DeductionKind = Field(default=DeductionKind.FIXED, alias="type")

    @field_validator('kind', mode='before')
    @classmethod
    def normalize_kind(cls, v: Any) -> Any:
        if v == "%":
            return DeductionKind.PERCENT
        if v in ("R$", "$"):
            return DeductionKind.FIXED
        return _lower(v)


class SalaryProfile(BaseModel):
    """Everything needed to project the user's net salary."""
    model_config = RECORD_CONFIG

    base_salary: Money = ZERO
    payment_day: Optional[int] = Field(default=5, ge=1, le=31)
    advance_day: Optional[int] = Field(default=None, ge=1, le=31)
    advance_percent: Money = ZERO
    advance_value: Money = ZERO
    vale_deductions: list[DeductionRule] = Field(default_factory=list)
    dependents: int = Field(default=0, ge=0)
    salary_exempt_from_discounts: bool = False
    vale_exempt_from_discounts: bool = False

    @property
    def has_advance(self) -> bool:
        return self.advance_value > ZERO or self.advance_percent > ZERO


# =============================================================================
# COMPUTED INVOICES
# =============================================================================

class InvoiceItem(BaseModel):
    """
    One line of a computed invoice.

    Expenses are negative, credits (refunds) positive. Payment records are
    positive and advisory: they never count toward the invoice total.
    """
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    description: str = ""
    amount: Decimal
    date: Optional[dt.date] = None
    category: str = ""
    type: TransactionType = TransactionType.EXPENSE
    is_payment: bool = False
    is_refund: bool = False
    is_projected: bool = False
    installment_number: Optional[int] = None
    total_installments: Optional[int] = None


class Invoice(BaseModel):
    """
    One billing cycle of one card.

    The cycle is the half-open interval (period_start, period_end].
    `total_amount` is the signed sum of the non-payment items.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    card_id: str
    reference_month: str
    status: InvoiceStatus
    period_start: dt.date
    period_end: dt.date
    due_date: Optional[dt.date] = None
    total_amount: Decimal = ZERO
    items: list[InvoiceItem] = Field(default_factory=list)

    @property
    def items_total(self) -> Decimal:
        return sum_money(item.amount for item in self.items if not item.is_payment)

    @property
    def amount_due(self) -> Decimal:
        """What the card holder owes for this cycle (never negative)."""
        return max(ZERO, -self.total_amount)


class CardInvoices(BaseModel):
    """Closed, current and future invoices of one card."""
    model_config = ConfigDict(frozen=True)

    card_id: str
    closed_invoice: Invoice
    current_invoice: Invoice
    future_invoices: list[Invoice] = Field(default_factory=list)

    def all_invoices(self) -> list[Invoice]:
        return [self.closed_invoice, self.current_invoice, *self.future_invoices]

    def invoices_for_month(self, month: str) -> list[Invoice]:
        return [inv for inv in self.all_invoices() if inv.reference_month == month]

    @property
    def future_total(self) -> Decimal:
        """Amount already committed to invoices after the current one."""
        return sum_money(inv.amount_due for inv in self.future_invoices)


class InvoiceForecast(BaseModel):
    """One month of the long-range invoice forecast of a card."""
    model_config = ConfigDict(frozen=True)

    month: str
    total: Decimal = ZERO
    installments_count: int = 0
    new_purchases_count: int = 0
    items: list[InvoiceItem] = Field(default_factory=list)


class LimitImpact(BaseModel):
    """
    How committed invoices weigh on a card's credit limit.

    available is the limit minus what the provider reports as used;
    after_closed is what remains once the current and every future
    invoice are paid.
    """
    model_config = ConfigDict(frozen=True)

    card_id: str
    available: Decimal = ZERO
    committed: Decimal = ZERO
    after_closed: Decimal = ZERO


class InvoiceBuildResult(BaseModel):
    """
    Result of building one card's invoices.

    On failure `invoices` is None and the caller falls back to provider
    data; building never raises.
    """
    model_config = ConfigDict(frozen=True)

    card_id: str
    success: bool
    invoices: Optional[CardInvoices] = None
    error_message: Optional[str] = None


class InvoiceSummary(BaseModel):
    """Balance summary of a card as of a reference date."""
    model_config = ConfigDict(frozen=True)

    current_balance: Decimal
    statement_balance: Decimal
    transactions_in_cycle: list[Transaction] = Field(default_factory=list)
    last_closing_date: dt.date
    next_closing_date: dt.date
