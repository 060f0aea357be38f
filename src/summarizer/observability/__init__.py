"""Observability package: adapter metrics aggregation.

Exports:
    AdapterMetrics: Immutable per-component counters.
    MetricsAggregator: Process-scoped holder feeding Prometheus collectors.
"""

from src.summarizer.observability.metrics import AdapterMetrics, MetricsAggregator

__all__ = ["AdapterMetrics", "MetricsAggregator"]
