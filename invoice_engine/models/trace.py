"""
Trace Models for the Invoice Engine

Every degraded path the engine takes is recorded as a trace event:
1. Records skipped because their date could not be parsed
2. Cards resolved through a fallback matching strategy
3. Provider figures overriding local sums
4. Subscriptions suppressed as already paid
5. Computations that failed and returned a zero result

DESIGN DECISION: Trace events describe a computation, they are not part of
its result. Results stay byte-identical across runs; events carry ids and
timestamps.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class TraceEventType(str, Enum):
    """Types of events we trace."""
    # Ingestion
    RECORD_REJECTED = "record_rejected"

    # Cycle assignment
    DATE_UNPARSABLE = "date_unparsable"
    CLOSING_DAY_DEFAULTED = "closing_day_defaulted"

    # Invoice building
    INVOICE_BUILT = "invoice_built"
    INVOICE_BUILD_FAILED = "invoice_build_failed"

    # Matching
    CARD_MATCHED = "card_matched"
    MATCH_FALLBACK_USED = "match_fallback_used"

    # Reconciliation
    PROVIDER_VALUE_USED = "provider_value_used"
    FULL_LIMIT_OVERRIDE = "full_limit_override"
    SUBSCRIPTION_SUPPRESSED = "subscription_suppressed"
    SUBSCRIPTION_PROJECTED = "subscription_projected"

    # Engine
    COMPUTATION_COMPLETED = "computation_completed"
    COMPUTATION_FAILED = "computation_failed"
    CACHE_HIT = "cache_hit"


class TraceSeverity(str, Enum):
    """Severity level for trace events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TraceEvent(BaseModel):
    """A single trace event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: TraceEventType
    severity: TraceSeverity = TraceSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'card', 'subscription')"
    )
    entity_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Groups every event of one computation pass"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class TraceEventBuilder:
    """
    Helper class to build trace events with common patterns.

    Usage:
        event = TraceEventBuilder.date_unparsable("tx_1", "31/02/2024")
        event = TraceEventBuilder.card_matched("card_1", "index", 12)
    """

    @staticmethod
    def record_rejected(
        record_id: Optional[str],
        issues: list[dict],
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.RECORD_REJECTED,
            severity=TraceSeverity.WARNING,
            entity_type="transaction",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Raw record rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def date_unparsable(
        transaction_id: str,
        raw_date: Any,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.DATE_UNPARSABLE,
            severity=TraceSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction excluded from cycle assignment: invalid date",
            details={"raw_date": None if raw_date is None else str(raw_date)},
        )

    @staticmethod
    def closing_day_defaulted(
        card_id: str,
        raw_closing_day: Any,
        effective_day: int,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.CLOSING_DAY_DEFAULTED,
            severity=TraceSeverity.DEBUG,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description=f"Closing day clamped to {effective_day}",
            details={
                "raw_closing_day": raw_closing_day,
                "effective_day": effective_day,
            },
        )

    @staticmethod
    def invoice_built(
        card_id: str,
        reference_month: str,
        item_count: int,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.INVOICE_BUILT,
            severity=TraceSeverity.DEBUG,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description=f"Invoices built, current cycle {reference_month}",
            details={
                "reference_month": reference_month,
                "item_count": item_count,
            },
        )

    @staticmethod
    def invoice_build_failed(
        card_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.INVOICE_BUILD_FAILED,
            severity=TraceSeverity.ERROR,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description="Invoice build failed, falling back to provider data",
            error_message=error_message,
        )

    @staticmethod
    def card_matched(
        card_id: str,
        strategy: str,
        transaction_count: int,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        fallback = strategy != "direct"
        return TraceEvent(
            event_type=(
                TraceEventType.MATCH_FALLBACK_USED
                if fallback
                else TraceEventType.CARD_MATCHED
            ),
            severity=TraceSeverity.WARNING if fallback else TraceSeverity.DEBUG,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description=f"Card resolved via {strategy} ({transaction_count} transactions)",
            details={
                "strategy": strategy,
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def provider_value_used(
        card_id: str,
        invoice_type: str,
        source: str,
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.PROVIDER_VALUE_USED,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description=f"{invoice_type} invoice taken from {source}",
            details={
                "invoice_type": invoice_type,
                "source": source,
                "amount": amount,
            },
        )

    @staticmethod
    def full_limit_override(
        card_id: str,
        computed: str,
        limit: str,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.FULL_LIMIT_OVERRIDE,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description="Invoice amount replaced with the full credit limit",
            details={"computed": computed, "limit": limit},
        )

    @staticmethod
    def subscription_suppressed(
        subscription_id: str,
        month: str,
        reason: str,
        matched_transaction_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.SUBSCRIPTION_SUPPRESSED,
            severity=TraceSeverity.DEBUG,
            entity_type="subscription",
            entity_id=subscription_id,
            correlation_id=correlation_id,
            description=f"Subscription already paid in {month} ({reason})",
            details={
                "month": month,
                "reason": reason,
                "matched_transaction_id": matched_transaction_id,
            },
        )

    @staticmethod
    def subscription_projected(
        subscription_id: str,
        month: str,
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.SUBSCRIPTION_PROJECTED,
            severity=TraceSeverity.DEBUG,
            entity_type="subscription",
            entity_id=subscription_id,
            correlation_id=correlation_id,
            description=f"Subscription projected for {month}",
            details={"month": month, "amount": amount},
        )

    @staticmethod
    def cache_hit(
        cache_key: str,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.CACHE_HIT,
            severity=TraceSeverity.DEBUG,
            entity_type="dashboard",
            correlation_id=correlation_id,
            description="Dashboard served from cache",
            details={"cache_key": cache_key},
        )

    @staticmethod
    def computation_completed(
        reference_month: str,
        card_count: int,
        transaction_count: int,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.COMPUTATION_COMPLETED,
            entity_type="dashboard",
            correlation_id=correlation_id,
            description=f"Dashboard computed for {reference_month}",
            details={
                "card_count": card_count,
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def computation_failed(
        error_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> TraceEvent:
        return TraceEvent(
            event_type=TraceEventType.COMPUTATION_FAILED,
            severity=TraceSeverity.ERROR,
            entity_type="dashboard",
            correlation_id=correlation_id,
            description=f"Computation failed: {error_type}",
            error_message=error_message,
        )
