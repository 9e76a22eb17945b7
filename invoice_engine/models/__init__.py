"""
Data Models Package

This package contains all Pydantic models used by the Invoice Engine.
All data flowing through the engine must conform to these schemas.
"""

from invoice_engine.models.finance import (
    Bill,
    BillingCycle,
    BillState,
    CardAccount,
    CardInvoices,
    CheckingAccount,
    ConnectionMode,
    DeductionKind,
    DeductionRule,
    Invoice,
    InvoiceBuildResult,
    InvoiceForecast,
    InvoiceItem,
    InvoiceStatus,
    InvoiceSummary,
    LimitImpact,
    SalaryProfile,
    SubscriptionDefinition,
    SubscriptionStatus,
    Transaction,
    TransactionKind,
    TransactionStatus,
    TransactionType,
)
from invoice_engine.models.dashboard import (
    CardMatch,
    DashboardResult,
    DashboardSettings,
    DashboardSnapshot,
    DashboardStats,
    IncomeBreakdown,
    InvoiceSource,
    InvoiceType,
    MatchStrategy,
    ProjectionStatus,
    ReconciledInvoice,
    RecurringProjection,
)
from invoice_engine.models.ingestion import (
    NormalizationIssue,
    NormalizationResult,
)
from invoice_engine.models.trace import (
    TraceEvent,
    TraceEventBuilder,
    TraceEventType,
    TraceSeverity,
)

__all__ = [
    # Finance records
    "Bill",
    "BillingCycle",
    "BillState",
    "CardAccount",
    "CardInvoices",
    "CheckingAccount",
    "ConnectionMode",
    "DeductionKind",
    "DeductionRule",
    "Invoice",
    "InvoiceBuildResult",
    "InvoiceForecast",
    "InvoiceItem",
    "InvoiceStatus",
    "InvoiceSummary",
    "LimitImpact",
    "SalaryProfile",
    "SubscriptionDefinition",
    "SubscriptionStatus",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
    "TransactionType",
    # Dashboard models
    "CardMatch",
    "DashboardResult",
    "DashboardSettings",
    "DashboardSnapshot",
    "DashboardStats",
    "IncomeBreakdown",
    "InvoiceSource",
    "InvoiceType",
    "MatchStrategy",
    "ProjectionStatus",
    "ReconciledInvoice",
    "RecurringProjection",
    # Ingestion models
    "NormalizationIssue",
    "NormalizationResult",
    # Trace models
    "TraceEvent",
    "TraceEventBuilder",
    "TraceEventType",
    "TraceSeverity",
]
