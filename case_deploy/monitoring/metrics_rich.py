"""
Prometheus metrics for deployment runs.

Organized into: item writes, cache persistence.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram


class DeployMetrics:
    """Counters and latencies for the item-write pipeline."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()
        self._registry = reg

        # === Item Writes ===
        self.writes_submitted = Counter(
            'case_item_writes_submitted_total',
            'Config line writes sent to the remote program',
            registry=reg
        )
        self.writes_confirmed = Counter(
            'case_item_writes_confirmed_total',
            'Config line writes confirmed (including ack-lost recoveries)',
            labelnames=['source'],
            registry=reg
        )
        self.writes_retried = Counter(
            'case_item_writes_retried_total',
            'Config line writes retried after a transient failure',
            registry=reg
        )
        self.writes_failed = Counter(
            'case_item_writes_failed_total',
            'Config line writes recorded as failed',
            labelnames=['kind'],
            registry=reg
        )
        self.write_latency_ms = Histogram(
            'case_item_write_latency_ms',
            'Time from submit to confirmation (milliseconds)',
            buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000],
            registry=reg
        )

        # === Cache ===
        self.cache_persist_ms = Histogram(
            'case_cache_persist_ms',
            'Time to atomically persist the cache (milliseconds)',
            buckets=[1, 5, 10, 25, 50, 100, 250, 1000],
            registry=reg
        )

    def get_registry(self) -> CollectorRegistry:
        return self._registry

    def value(self, name: str, labels: Optional[dict] = None) -> float:
        """Read a sample back (used by the summary line and tests)."""
        v = self._registry.get_sample_value(name, labels or {})
        return v or 0.0
