"""
Dashboard Models

The settings bundle and snapshot the engine consumes, the intermediate
reconciliation results it produces, and the final dashboard figures.

DESIGN DECISION: Every degraded path has its own enum value
(MatchStrategy, InvoiceSource, ProjectionStatus). A caller can always tell
which source produced a number without reading logs.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from invoice_engine.models.finance import (
    CardAccount,
    CardInvoices,
    CheckingAccount,
    LimitImpact,
    RECORD_CONFIG,
    SalaryProfile,
    SubscriptionDefinition,
    Transaction,
)
from invoice_engine.models.money import ZERO, month_key


class InvoiceType(str, Enum):
    """Which invoice value a card contributes to the dashboard."""
    CURRENT = "current"
    NEXT = "next"
    USED_TOTAL = "used_total"


class MatchStrategy(str, Enum):
    """How a card's transactions (or amount) were resolved."""
    DIRECT = "direct"
    INDEX = "index"
    SINGLE_CARD = "single_card"
    PROVIDER_BALANCE = "provider_balance"
    RAW_BALANCE = "raw_balance"
    NONE = "none"  # Nothing usable; the card contributes zero


class InvoiceSource(str, Enum):
    """Where a reconciled invoice amount came from."""
    OPEN_BILL = "open_bill"
    FUTURE_BILL = "future_bill"
    LATEST_BILL = "latest_bill"
    NEXT_BILL = "next_bill"
    TRANSACTIONS = "transactions"
    USED_CREDIT_LIMIT = "used_credit_limit"
    LIMIT_DIFFERENCE = "limit_difference"
    BALANCE = "balance"
    MATCHER_FALLBACK = "matcher_fallback"
    FULL_LIMIT = "full_limit"


class ProjectionStatus(str, Enum):
    """Why a subscription was (or was not) projected for a month."""
    PAID_EXPLICIT = "paid_explicit"
    MATCHED_BACK_REFERENCE = "matched_back_reference"
    MATCHED_CHECKING = "matched_checking"
    MATCHED_CARD = "matched_card"
    PROJECTED = "projected"
    INACTIVE = "inactive"
    NOT_DUE = "not_due"


class DashboardSettings(BaseModel):
    """
    User toggles that shape the dashboard totals.

    `enabled_card_ids=None` means every card is enabled.
    """
    model_config = RECORD_CONFIG

    include_checking: bool = True
    include_credit_card: bool = True
    use_total_limit: bool = False
    use_full_limit: bool = False
    include_open_finance: bool = True
    enabled_card_ids: Optional[frozenset[str]] = None

    @field_serializer('enabled_card_ids')
    def serialize_enabled(self, v: Optional[frozenset[str]]) -> Optional[list[str]]:
        return None if v is None else sorted(v)

    def is_card_enabled(self, card_id: str) -> bool:
        return self.enabled_card_ids is None or card_id in self.enabled_card_ids


# =============================================================================
# RECONCILIATION RESULTS
# =============================================================================

class CardMatch(BaseModel):
    """Transactions (or a fallback amount) attributed to one card."""
    model_config = ConfigDict(frozen=True)

    card_id: str
    strategy: MatchStrategy
    transactions: list[Transaction] = Field(default_factory=list)
    fallback_amount: Optional[Decimal] = None
    matched_account_id: Optional[str] = None


class ReconciledInvoice(BaseModel):
    """The authoritative invoice value of one card for one invoice type."""
    model_config = ConfigDict(frozen=True)

    card_id: str
    invoice_type: InvoiceType
    amount: Decimal
    source: InvoiceSource
    strategy: MatchStrategy
    enabled: bool = True
    bill_due_date: Optional[dt.date] = None


class RecurringProjection(BaseModel):
    """Projected contribution of one subscription in one month."""
    model_config = ConfigDict(frozen=True)

    subscription_id: str
    month: str
    amount: Decimal
    status: ProjectionStatus
    matched_transaction_id: Optional[str] = None


class IncomeBreakdown(BaseModel):
    """Gross-to-net salary computation."""
    model_config = ConfigDict(frozen=True)

    gross: Decimal = ZERO
    advance: Decimal = ZERO
    inss: Decimal = ZERO
    irrf: Decimal = ZERO
    custom_deductions: Decimal = ZERO
    net_salary: Decimal = ZERO
    exempt: bool = False


class DashboardStats(BaseModel):
    """The five figures shown on the dashboard cards."""
    model_config = ConfigDict(frozen=True)

    total_income: Decimal = ZERO
    total_expense: Decimal = ZERO
    total_balance: Decimal = ZERO
    monthly_savings: Decimal = ZERO
    credit_card_spending: Decimal = ZERO


# =============================================================================
# ENGINE INPUT / OUTPUT
# =============================================================================

class DashboardSnapshot(BaseModel):
    """
    Everything one computation pass reads.

    `reference_month` defaults to the month of `reference_date`.
    `invoice_types` maps card id to the invoice the user selected for it;
    cards missing from the map use CURRENT.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    reference_date: dt.date
    reference_month: Optional[str] = None
    transactions: list[Transaction] = Field(default_factory=list)
    cards: list[CardAccount] = Field(default_factory=list)
    checking_accounts: list[CheckingAccount] = Field(default_factory=list)
    subscriptions: list[SubscriptionDefinition] = Field(default_factory=list)
    settings: DashboardSettings = Field(default_factory=DashboardSettings)
    salary: Optional[SalaryProfile] = None
    invoice_types: dict[str, InvoiceType] = Field(default_factory=dict)

    @field_validator('reference_month')
    @classmethod
    def validate_month(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        dt.date.fromisoformat(f"{v}-01")
        return v

    @property
    def effective_month(self) -> str:
        return self.reference_month or month_key(self.reference_date)


class DashboardResult(BaseModel):
    """
    Output of one computation pass.

    When `degraded` is True the computation failed and every figure is
    zero; `error_message` says why.
    """
    model_config = ConfigDict(frozen=True)

    reference_month: str
    stats: DashboardStats = Field(default_factory=DashboardStats)
    card_invoices: list[CardInvoices] = Field(default_factory=list)
    reconciled_invoices: list[ReconciledInvoice] = Field(default_factory=list)
    limit_impacts: list[LimitImpact] = Field(default_factory=list)
    projections: list[RecurringProjection] = Field(default_factory=list)
    income: Optional[IncomeBreakdown] = None
    projected_income: Decimal = ZERO
    projected_expense: Decimal = ZERO
    provider_balance: Decimal = ZERO
    degraded: bool = False
    error_message: Optional[str] = None
    cache_key: Optional[str] = None
