"""
Observability Module — Sync metrics.
"""

from .metrics import Counter, Gauge, Histogram, MetricsRegistry, metrics

__all__ = [
    "metrics",
    "MetricsRegistry",
    "Counter",
    "Gauge",
    "Histogram",
]
