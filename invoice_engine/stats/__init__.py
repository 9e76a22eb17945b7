"""Dashboard aggregation."""

from invoice_engine.stats.aggregator import (
    Bucket,
    StatsAggregator,
    aggregate_dashboard,
    classify,
)

__all__ = [
    "Bucket",
    "StatsAggregator",
    "aggregate_dashboard",
    "classify",
]
