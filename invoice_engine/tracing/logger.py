"""
Trace Logger

DESIGN DECISION: The trace logger is the explicit context object of one
computation pass. It replaces module-level caches and "already warned" flags:
each call gets its own logger, so nothing leaks between passes.

The trace logger:
- Is synchronous (the engine never suspends)
- Logs every event locally through structlog
- Keeps the events so the caller can inspect degraded paths
- Carries a correlation ID shared by every event of the pass
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from invoice_engine.models.trace import TraceEvent, TraceEventBuilder


structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class TraceLogger:
    """
    Collects and logs the trace events of one computation pass.
    """

    def __init__(self, correlation_id: Optional[UUID] = None):
        """
        Initialize trace logger.

        Args:
            correlation_id: ID shared by every event of this pass.
                           A new one is created if omitted.
        """
        self.correlation_id = correlation_id or create_correlation_id()
        self._events: list[TraceEvent] = []
        self._logger = structlog.get_logger("invoice_engine")

    @property
    def events(self) -> tuple[TraceEvent, ...]:
        return tuple(self._events)

    def log(self, event: TraceEvent) -> None:
        """Log an event locally and keep it."""
        if event.correlation_id is None:
            event = event.model_copy(update={"correlation_id": self.correlation_id})
        self._events.append(event)

        log_dict = event.to_log_dict()
        if event.severity.value == "error":
            self._logger.error("trace_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("trace_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("trace_event", **log_dict)
        else:
            self._logger.info("trace_event", **log_dict)

    def events_of_type(self, event_type: str) -> list[TraceEvent]:
        return [e for e in self._events if e.event_type.value == event_type]

    def log_date_unparsable(self, transaction_id: str, raw_date: Any) -> None:
        self.log(TraceEventBuilder.date_unparsable(transaction_id, raw_date))

    def log_closing_day_defaulted(
        self,
        card_id: str,
        raw_closing_day: Any,
        effective_day: int,
    ) -> None:
        self.log(TraceEventBuilder.closing_day_defaulted(
            card_id, raw_closing_day, effective_day,
        ))

    def log_invoice_built(self, card_id: str, reference_month: str, item_count: int) -> None:
        self.log(TraceEventBuilder.invoice_built(card_id, reference_month, item_count))

    def log_invoice_build_failed(self, card_id: str, error_message: str) -> None:
        self.log(TraceEventBuilder.invoice_build_failed(card_id, error_message))

    def log_card_matched(self, card_id: str, strategy: str, transaction_count: int) -> None:
        self.log(TraceEventBuilder.card_matched(card_id, strategy, transaction_count))

    def log_provider_value_used(
        self,
        card_id: str,
        invoice_type: str,
        source: str,
        amount: str,
    ) -> None:
        self.log(TraceEventBuilder.provider_value_used(
            card_id, invoice_type, source, amount,
        ))

    def log_full_limit_override(self, card_id: str, computed: str, limit: str) -> None:
        self.log(TraceEventBuilder.full_limit_override(card_id, computed, limit))

    def log_subscription_suppressed(
        self,
        subscription_id: str,
        month: str,
        reason: str,
        matched_transaction_id: Optional[str] = None,
    ) -> None:
        self.log(TraceEventBuilder.subscription_suppressed(
            subscription_id, month, reason, matched_transaction_id,
        ))

    def log_subscription_projected(self, subscription_id: str, month: str, amount: str) -> None:
        self.log(TraceEventBuilder.subscription_projected(subscription_id, month, amount))

    def log_record_rejected(self, record_id: Optional[str], issues: list[dict]) -> None:
        self.log(TraceEventBuilder.record_rejected(record_id, issues))

    def log_computation_completed(
        self,
        reference_month: str,
        card_count: int,
        transaction_count: int,
    ) -> None:
        self.log(TraceEventBuilder.computation_completed(
            reference_month, card_count, transaction_count,
        ))

    def log_computation_failed(self, error_type: str, error_message: str) -> None:
        self.log(TraceEventBuilder.computation_failed(error_type, error_message))

    def log_cache_hit(self, cache_key: str) -> None:
        self.log(TraceEventBuilder.cache_hit(cache_key))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a computation pass and share it with every
    component the pass touches.
    """
    return uuid4()
