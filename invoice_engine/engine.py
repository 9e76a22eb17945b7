"""
Dashboard Engine

The public entry point. Wraps the stats aggregator with the guarantees a
caller relies on:
1. compute() never raises: a failure yields a degraded, all-zero result
2. Identical snapshots yield identical results
3. Results are memoised by a content hash of the snapshot

DESIGN DECISION: The cache key is a hash of the snapshot content, not of
object identity. The caller owns invalidation simply by passing new data;
there is no hidden "dirty" flag to forget.
"""

import hashlib
import json
from collections import OrderedDict
from typing import Any, Optional

from pydantic import ValidationError

from invoice_engine.config.settings import EngineSettings, TaxSettings, get_settings
from invoice_engine.models.dashboard import DashboardResult, DashboardSnapshot
from invoice_engine.stats.aggregator import StatsAggregator
from invoice_engine.tracing.logger import TraceLogger


def snapshot_key(snapshot: DashboardSnapshot) -> str:
    """SHA-256 of the canonical JSON form of a snapshot."""
    payload = json.dumps(
        snapshot.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DashboardEngine:
    """
    Computes dashboards and memoises them.

    Usage:
        engine = DashboardEngine()
        result = engine.compute(snapshot)
        if result.degraded:
            show_warning(result.error_message)
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        tax: Optional[TaxSettings] = None,
        aggregator: Optional[StatsAggregator] = None,
    ):
        self._settings = settings or get_settings().engine
        self._aggregator = aggregator or StatsAggregator(self._settings, tax)
        self._cache: OrderedDict[str, DashboardResult] = OrderedDict()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one cached result, or all of them."""
        if key is None:
            self._cache.clear()
        else:
            self._cache.pop(key, None)

    def compute(
        self,
        snapshot: DashboardSnapshot,
        trace: Optional[TraceLogger] = None,
    ) -> DashboardResult:
        """
        Dashboard for one snapshot.

        Args:
            snapshot: Everything the computation reads
            trace: Receives the events of this pass; a new one is
                   created if omitted

        Returns:
            DashboardResult; `degraded` is True when computation failed
        """
        trace = trace or TraceLogger()
        key = None
        try:
            key = snapshot_key(snapshot)
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                trace.log_cache_hit(key)
                return cached

            result = self._aggregator.aggregate(snapshot, trace)
            result = result.model_copy(update={"cache_key": key})
            self._store(key, result)
            return result

        except Exception as e:
            trace.log_computation_failed(type(e).__name__, str(e))
            return DashboardResult(
                reference_month=_month_of(snapshot),
                degraded=True,
                error_message=str(e),
                cache_key=key,
            )

    def compute_raw(
        self,
        data: dict[str, Any],
        trace: Optional[TraceLogger] = None,
    ) -> DashboardResult:
        """Like compute(), for an unvalidated snapshot dict (camelCase or snake_case)."""
        trace = trace or TraceLogger()
        try:
            snapshot = DashboardSnapshot.model_validate(data)
        except ValidationError as e:
            trace.log_computation_failed("ValidationError", str(e))
            month = data.get("referenceMonth") or data.get("reference_month") or ""
            return DashboardResult(
                reference_month=str(month),
                degraded=True,
                error_message=f"Invalid snapshot: {e.error_count()} errors",
            )
        return self.compute(snapshot, trace)

    def _store(self, key: str, result: DashboardResult) -> None:
        if self._settings.cache_size <= 0:
            return
        self._cache[key] = result
        while len(self._cache) > self._settings.cache_size:
            self._cache.popitem(last=False)


def _month_of(snapshot: DashboardSnapshot) -> str:
    try:
        return snapshot.effective_month
    except AttributeError:
        return ""
