"""
Tests for the dashboard engine: caching, idempotency and degraded results.
"""

import pytest
from datetime import date
from decimal import Decimal

from invoice_engine.config.settings import EngineSettings, TaxSettings
from invoice_engine.engine import DashboardEngine, snapshot_key
from invoice_engine.models import (
    CardAccount,
    DashboardSettings,
    DashboardSnapshot,
    SubscriptionDefinition,
    Transaction,
)
from invoice_engine.stats import StatsAggregator
from invoice_engine.tracing import TraceLogger


class BrokenAggregator(StatsAggregator):
    """Aggregator that always fails."""

    def aggregate(self, snapshot, trace=None):
        raise RuntimeError("boom")


@pytest.fixture
def snapshot():
    return DashboardSnapshot(
        reference_date=date(2024, 6, 10),
        transactions=[
            Transaction(id="sal", date=date(2024, 6, 5), amount="5000", type="income"),
            Transaction(
                id="market", date=date(2024, 6, 2), description="Mercado", amount="-200",
                kind="credit_card", card_id="c1",
            ),
        ],
        cards=[CardAccount(id="c1", closing_day=15, due_day=25)],
        subscriptions=[SubscriptionDefinition(id="s1", name="Netflix", amount="39.90")],
        settings=DashboardSettings(include_checking=False),
    )


def make_engine(**settings) -> DashboardEngine:
    return DashboardEngine(EngineSettings(**settings), TaxSettings())


class TestSnapshotKey:
    """Tests for content-hash cache keys."""

    def test_key_is_stable(self, snapshot):
        """Test that equal content gives equal keys."""
        copy = DashboardSnapshot.model_validate(snapshot.model_dump())
        assert snapshot_key(snapshot) == snapshot_key(copy)
        assert len(snapshot_key(snapshot)) == 64

    def test_key_follows_content(self, snapshot):
        """Test that changing any input changes the key."""
        changed = snapshot.model_copy(update={"reference_month": "2024-05"})
        assert snapshot_key(snapshot) != snapshot_key(changed)


class TestCompute:
    """Tests for DashboardEngine.compute."""

    def test_result_carries_cache_key(self, snapshot):
        """Test that results record the key they were stored under."""
        result = make_engine().compute(snapshot)

        assert not result.degraded
        assert result.cache_key == snapshot_key(snapshot)
        assert result.stats.total_income == Decimal("5000.00")
        assert result.stats.total_expense == Decimal("200.00")

    def test_idempotent_across_engines(self, snapshot):
        """Test that two engines serialize identical results."""
        first = make_engine().compute(snapshot)
        second = make_engine().compute(snapshot)
        assert first.model_dump_json() == second.model_dump_json()

    def test_cache_hit(self, snapshot):
        """Test that a repeated snapshot is served from cache."""
        engine = make_engine()
        trace = TraceLogger()

        first = engine.compute(snapshot)
        second = engine.compute(snapshot, trace)

        assert second is first
        assert engine.cache_size == 1
        assert len(trace.events_of_type("cache_hit")) == 1
        assert trace.events_of_type("computation_completed") == []

    def test_cache_disabled(self, snapshot):
        """Test that a zero cache size stores nothing."""
        engine = make_engine(cache_size=0)
        engine.compute(snapshot)
        assert engine.cache_size == 0

    def test_eviction(self, snapshot):
        """Test that the oldest result is evicted first."""
        engine = make_engine(cache_size=1)
        other = snapshot.model_copy(update={"reference_month": "2024-05"})

        engine.compute(snapshot)
        engine.compute(other)
        assert engine.cache_size == 1

        trace = TraceLogger()
        engine.compute(snapshot, trace)
        assert trace.events_of_type("cache_hit") == []

    def test_invalidate(self, snapshot):
        """Test dropping cached results."""
        engine = make_engine()
        result = engine.compute(snapshot)

        engine.invalidate(result.cache_key)
        assert engine.cache_size == 0

        engine.compute(snapshot)
        engine.invalidate()
        assert engine.cache_size == 0

    def test_failure_degrades(self, snapshot):
        """Test that a failing pass yields a zero result instead of raising."""
        engine = DashboardEngine(EngineSettings(), TaxSettings(), BrokenAggregator())
        trace = TraceLogger()
        result = engine.compute(snapshot, trace)

        assert result.degraded
        assert result.error_message == "boom"
        assert result.reference_month == "2024-06"
        assert result.stats.total_income == Decimal("0")
        assert engine.cache_size == 0
        assert len(trace.events_of_type("computation_failed")) == 1

    def test_corrupt_amount_does_not_degrade(self, snapshot):
        """Test that one absurd amount is zeroed instead of failing the pass."""
        corrupt = Transaction(
            id="huge", date=date(2024, 6, 6), description="Padaria", amount="1e999999", type="expense",
        )
        changed = snapshot.model_copy(update={"transactions": snapshot.transactions + [corrupt]})
        result = make_engine().compute(changed)

        assert not result.degraded
        assert result.stats.total_income == Decimal("5000.00")
        assert result.stats.total_expense == Decimal("200.00")


class TestComputeRaw:
    """Tests for DashboardEngine.compute_raw."""

    def test_camel_case_snapshot(self):
        """Test a snapshot in the app's camelCase shape."""
        result = make_engine().compute_raw({
            "referenceDate": "2024-06-10",
            "transactions": [
                {"id": "t1", "date": "2024-06-05", "amount": "100", "type": "income"},
            ],
            "settings": {"includeChecking": False},
        })

        assert not result.degraded
        assert result.stats.total_income == Decimal("100.00")
        assert result.stats.total_balance == Decimal("100.00")

    def test_invalid_snapshot(self):
        """Test that an invalid snapshot degrades instead of raising."""
        trace = TraceLogger()
        result = make_engine().compute_raw({"referenceMonth": "2024-06"}, trace)

        assert result.degraded
        assert result.reference_month == "2024-06"
        assert result.error_message.startswith("Invalid snapshot")
        assert len(trace.events_of_type("computation_failed")) == 1
