"""
Tests for the Invoice Engine models

Test strategy:
1. Unit tests for individual components (models, calculators, matchers)
2. End-to-end tests for the engine on small in-memory snapshots
3. No I/O in tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from invoice_engine.models import (
    BillingCycle,
    CardAccount,
    DashboardSettings,
    DashboardSnapshot,
    DeductionKind,
    DeductionRule,
    Invoice,
    InvoiceStatus,
    SubscriptionDefinition,
    SubscriptionStatus,
    TraceEvent,
    TraceEventBuilder,
    TraceEventType,
    TraceSeverity,
    Transaction,
    TransactionStatus,
)
from invoice_engine.models.money import coerce_money, parse_date, round_cents, sum_money
from invoice_engine.tracing import TraceLogger


class TestMoneyHelpers:
    """Tests for money and date coercion."""

    def test_brazilian_decimal_format(self):
        """Test that comma decimals and dot thousands are understood."""
        assert coerce_money("1.234,56") == Decimal("1234.56")
        assert coerce_money("39,90") == Decimal("39.90")

    def test_garbage_becomes_zero(self):
        """Test that unusable values fold into sums as zero."""
        assert coerce_money(None) == Decimal("0")
        assert coerce_money(float("nan")) == Decimal("0")
        assert coerce_money("abc") == Decimal("0")
        assert coerce_money(True) == Decimal("0")

    def test_extreme_magnitudes_become_zero(self):
        """Test that amounts too large to round to cents are unusable."""
        assert coerce_money("1e999999") == Decimal("0")
        assert coerce_money(Decimal("-1E+40")) == Decimal("0")
        assert coerce_money(10 ** 20) == Decimal("0")
        assert coerce_money(1e300) == Decimal("0")
        assert sum_money(["5000", "1e999999"]) == Decimal("5000.00")
        assert round_cents(coerce_money("1e-999999")) == Decimal("0.00")

    def test_round_half_up(self):
        """Test rounding to the cent."""
        assert round_cents(Decimal("0.005")) == Decimal("0.01")
        assert round_cents(Decimal("2.344")) == Decimal("2.34")

    def test_sum_of_nothing_is_zero(self):
        """Test that empty collections sum to zero."""
        assert sum_money([]) == Decimal("0.00")

    def test_parse_date_formats(self):
        """Test every accepted date shape."""
        assert parse_date("2024-06-01") == date(2024, 6, 1)
        assert parse_date("2024-06-01T23:10:00Z") == date(2024, 6, 1)
        assert parse_date("2024-06") == date(2024, 6, 1)
        assert parse_date("31/02/2024") is None
        assert parse_date("") is None


class TestTransactionModel:
    """Tests for the Transaction model."""

    def test_camel_case_keys(self):
        """Test that ingestion-layer camelCase keys are accepted."""
        tx = Transaction.model_validate({
            "id": "t1",
            "date": "2024-06-01",
            "amount": "39,90",
            "accountId": "acc_1",
            "manualInvoiceMonth": "2024-07",
        })
        assert tx.account_id == "acc_1"
        assert tx.amount == Decimal("39.90")
        assert tx.manual_invoice_month == "2024-07"

    def test_unparsable_date_is_kept_as_none(self):
        """Test that a bad date does not reject the record."""
        tx = Transaction(id="t1", date="31/02/2024", amount=-10)
        assert tx.date is None

    def test_numeric_id_is_coerced(self):
        """Test that numeric ids become strings."""
        tx = Transaction.model_validate({"id": 123, "amount": 1})
        assert tx.id == "123"

    def test_legacy_completed_status(self):
        """Test that `completed` means posted."""
        tx = Transaction(id="t1", status="completed")
        assert tx.status == TransactionStatus.POSTED
        assert tx.is_posted

    def test_signed_amount_follows_type(self):
        """Test that the declared type decides the sign."""
        assert Transaction(id="a", amount=50, type="expense").signed_amount == Decimal("-50")
        assert Transaction(id="b", amount=-50, type="INCOME").signed_amount == Decimal("50")
        assert Transaction(id="c", amount=-7).signed_amount == Decimal("-7")

    def test_invalid_month_keys_are_dropped(self):
        """Test that malformed invoice months mean unset."""
        tx = Transaction(id="t1", manual_invoice_month="2024-13", invoice_month_key="abc")
        assert tx.manual_invoice_month is None
        assert tx.invoice_month_key is None

    def test_transactions_are_frozen(self):
        """Test that records cannot be mutated during a pass."""
        tx = Transaction(id="t1", amount=10)
        with pytest.raises(ValidationError):
            tx.amount = Decimal("20")


class TestAccountModels:
    """Tests for cards, subscriptions and payroll models."""

    def test_card_lenient_fields(self):
        """Test that bad provider data becomes absent, not an error."""
        card = CardAccount.model_validate({
            "id": "c1",
            "closingDay": "abc",
            "creditLimit": "n/a",
            "balance": None,
        })
        assert card.closing_day is None
        assert card.credit_limit is None
        assert card.balance == Decimal("0")
        assert not card.has_provider_data

    def test_subscription_aliases(self):
        """Test billing cycle and status spellings."""
        sub = SubscriptionDefinition.model_validate({
            "id": "s1",
            "name": "Spotify",
            "billingCycle": "annual",
            "status": "cancelled",
            "paidMonths": ["2024-02", "2024-01"],
        })
        assert sub.billing_cycle == BillingCycle.YEARLY
        assert sub.status == SubscriptionStatus.CANCELED
        assert sub.is_paid_in("2024-01")
        assert sub.model_dump(mode="json")["paid_months"] == ["2024-01", "2024-02"]

    def test_deduction_rule_symbols(self):
        """Test that `%` and `R$` map to deduction kinds."""
        percent = DeductionRule.model_validate({"name": "VR", "value": "10", "type": "%"})
        fixed = DeductionRule.model_validate({"name": "Plano", "value": "50", "type": "R$"})
        assert percent.kind == DeductionKind.PERCENT
        assert fixed.kind == DeductionKind.FIXED


class TestInvoiceModels:
    """Tests for computed invoice models."""

    def _invoice(self, total: str) -> Invoice:
        return Invoice(
            id="c1_2024-06",
            card_id="c1",
            reference_month="2024-06",
            status=InvoiceStatus.OPEN,
            period_start=date(2024, 5, 15),
            period_end=date(2024, 6, 15),
            total_amount=Decimal(total),
        )

    def test_amount_due_of_expenses(self):
        """Test that a negative total is owed."""
        assert self._invoice("-120.50").amount_due == Decimal("120.50")

    def test_amount_due_never_negative(self):
        """Test that a credit balance owes nothing."""
        assert self._invoice("10.00").amount_due == Decimal("0")


class TestDashboardModels:
    """Tests for dashboard input models."""

    def test_all_cards_enabled_by_default(self):
        """Test that no explicit set means every card counts."""
        settings = DashboardSettings()
        assert settings.is_card_enabled("anything")

    def test_enabled_card_set(self):
        """Test that an explicit set restricts cards."""
        settings = DashboardSettings(enabled_card_ids=frozenset({"c2"}))
        assert settings.is_card_enabled("c2")
        assert not settings.is_card_enabled("c1")

    def test_snapshot_effective_month(self):
        """Test that the reference month defaults to the reference date's."""
        snapshot = DashboardSnapshot(reference_date=date(2024, 6, 10))
        assert snapshot.effective_month == "2024-06"

        browsing = DashboardSnapshot(reference_date=date(2024, 6, 10), reference_month="2024-03")
        assert browsing.effective_month == "2024-03"

    def test_snapshot_rejects_bad_month(self):
        """Test that an impossible reference month is rejected."""
        with pytest.raises(ValidationError):
            DashboardSnapshot(reference_date=date(2024, 6, 10), reference_month="2024-13")


class TestTraceModels:
    """Tests for trace event models."""

    def test_trace_event_creation(self):
        """Test TraceEvent creation."""
        event = TraceEvent(
            event_type=TraceEventType.DATE_UNPARSABLE,
            description="Bad date",
        )
        assert event.event_id is not None
        assert event.severity == TraceSeverity.INFO

    def test_trace_event_to_log_dict(self):
        """Test conversion to a structured log dict."""
        correlation_id = uuid4()
        event = TraceEvent(
            event_type=TraceEventType.CARD_MATCHED,
            entity_type="card",
            entity_id="c1",
            correlation_id=correlation_id,
            description="Matched",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "card_matched"
        assert log_dict["entity_id"] == "c1"
        assert log_dict["correlation_id"] == str(correlation_id)

    def test_builder_flags_fallback_strategies(self):
        """Test that non-direct matches are traced as fallbacks."""
        direct = TraceEventBuilder.card_matched("c1", "direct", 3)
        index = TraceEventBuilder.card_matched("c1", "index", 3)
        assert direct.event_type == TraceEventType.CARD_MATCHED
        assert index.event_type == TraceEventType.MATCH_FALLBACK_USED
        assert index.severity == TraceSeverity.WARNING

    def test_trace_logger_shares_correlation_id(self):
        """Test that every event of a pass carries the pass id."""
        trace = TraceLogger()
        trace.log_date_unparsable("t1", "31/02/2024")
        trace.log_card_matched("c1", "single_card", 2)

        assert len(trace.events) == 2
        assert all(e.correlation_id == trace.correlation_id for e in trace.events)
        assert len(trace.events_of_type("match_fallback_used")) == 1
