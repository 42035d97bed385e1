"""
Metrics — Collect and expose sync metrics.

Provides a small metrics collection system compatible with the
Prometheus exposition format.

## Usage

    from hooksync.observability.metrics import metrics

    metrics.increment("sync_total", labels={"result": "ok"})
    metrics.timing("sync_duration_seconds", 1.25)

    # Export for Prometheus
    output = metrics.export_prometheus()
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

# Git clones can take minutes, so buckets reach further than request timings
SYNC_BUCKETS = (0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300, float("inf"))


@dataclass
class MetricPoint:
    """A single metric data point."""

    name: str
    value: float
    timestamp: float
    labels: Dict[str, str] = field(default_factory=dict)


class _Metric:
    """Label handling shared by all metric types."""

    kind = "untyped"

    def __init__(self, name: str, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self._lock = Lock()

    @staticmethod
    def _key(labels: Optional[Dict[str, str]]) -> Tuple[Tuple[str, str], ...]:
        if not labels:
            return ()
        return tuple(sorted((k, str(v)) for k, v in labels.items()))

    def export(self) -> List[MetricPoint]:
        raise NotImplementedError


class Counter(_Metric):
    """A monotonically increasing counter."""

    kind = "counter"

    def __init__(self, name: str, help_text: str = ""):
        super().__init__(name, help_text)
        self._values: Dict[Tuple, float] = defaultdict(float)

    def inc(self, value: float = 1, labels: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            self._values[self._key(labels)] += value

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        return self._values.get(self._key(labels), 0)

    def total(self) -> float:
        """Sum over every label combination."""
        return sum(self._values.values())

    def export(self) -> List[MetricPoint]:
        now = time.time()
        return [MetricPoint(self.name, value, now, dict(key)) for key, value in self._values.items()]


class Gauge(_Metric):
    """A gauge that can go up and down."""

    kind = "gauge"

    def __init__(self, name: str, help_text: str = ""):
        super().__init__(name, help_text)
        self._values: Dict[Tuple, float] = {}

    def set(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            self._values[self._key(labels)] = value

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        return self._values.get(self._key(labels), 0)

    def export(self) -> List[MetricPoint]:
        now = time.time()
        return [MetricPoint(self.name, value, now, dict(key)) for key, value in self._values.items()]


class Histogram(_Metric):
    """A histogram for timing distributions."""

    kind = "histogram"

    def __init__(self, name: str, help_text: str = "", buckets: Optional[tuple] = None):
        super().__init__(name, help_text)
        self.buckets = buckets or SYNC_BUCKETS
        self._counts: Dict[Tuple, Dict[float, int]] = defaultdict(lambda: defaultdict(int))
        self._sums: Dict[Tuple, float] = defaultdict(float)
        self._totals: Dict[Tuple, int] = defaultdict(int)

    def observe(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._sums[key] += value
            self._totals[key] += 1
            for bucket in self.buckets:
                if value <= bucket:
                    self._counts[key][bucket] += 1
                    break

    def count(self, labels: Optional[Dict[str, str]] = None) -> int:
        return self._totals.get(self._key(labels), 0)

    def sum(self, labels: Optional[Dict[str, str]] = None) -> float:
        return self._sums.get(self._key(labels), 0.0)

    def export(self) -> List[MetricPoint]:
        points = []
        now = time.time()

        for key in list(self._totals):
            labels = dict(key)
            cumulative = 0
            for bucket in self.buckets:
                cumulative += self._counts[key].get(bucket, 0)
                le = "+Inf" if bucket == float("inf") else str(bucket)
                points.append(MetricPoint(f"{self.name}_bucket", cumulative, now, {**labels, "le": le}))

            points.append(MetricPoint(f"{self.name}_sum", self._sums[key], now, labels))
            points.append(MetricPoint(f"{self.name}_count", self._totals[key], now, labels))

        return points


class MetricsRegistry:
    """
    Central registry for all metrics.

    Metric names are prefixed (``hooksync_`` by default) on registration.
    """

    def __init__(self, prefix: str = "hooksync"):
        self.prefix = prefix
        self._metrics: Dict[str, _Metric] = {}
        self._lock = Lock()

        self._register_common_metrics()

    def _register_common_metrics(self) -> None:
        self.counter("sync_total", "Repository synchronisations by result and reason")
        self.histogram("sync_duration_seconds", "Repository synchronisation duration")
        self.gauge("last_success_timestamp_seconds", "Unix time of the last successful sync")
        self.counter("webhook_requests_total", "Webhook deliveries by HTTP status")

    def _get_or_create(self, cls, name: str, help_text: str) -> Any:
        full_name = f"{self.prefix}_{name}"
        with self._lock:
            metric = self._metrics.get(full_name)
            if metric is None:
                metric = cls(full_name, help_text)
                self._metrics[full_name] = metric
            elif not isinstance(metric, cls):
                raise TypeError(f"{full_name} is already registered as a {metric.kind}")
            return metric

    def counter(self, name: str, help_text: str = "") -> Counter:
        return self._get_or_create(Counter, name, help_text)

    def gauge(self, name: str, help_text: str = "") -> Gauge:
        return self._get_or_create(Gauge, name, help_text)

    def histogram(self, name: str, help_text: str = "") -> Histogram:
        return self._get_or_create(Histogram, name, help_text)

    # Convenience methods
    def increment(self, name: str, value: float = 1, labels: Optional[Dict[str, str]] = None) -> None:
        self.counter(name).inc(value, labels)

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        self.gauge(name).set(value, labels)

    def timing(self, name: str, seconds: float, labels: Optional[Dict[str, str]] = None) -> None:
        self.histogram(name).observe(seconds, labels)

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []
        for metric in self._metrics.values():
            lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            for point in metric.export():
                lines.append(f"{point.name}{self._format_labels(point.labels)} {point.value}")
        return "\n".join(lines) + "\n"

    def export_json(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metrics": {},
        }
        for name, metric in self._metrics.items():
            result["metrics"][name] = [
                {"name": p.name, "labels": p.labels, "value": p.value}
                for p in metric.export()
            ]
        return result

    def _format_labels(self, labels: Dict[str, str]) -> str:
        if not labels:
            return ""
        pairs = [f'{k}="{v}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(pairs) + "}"


# Global metrics instance
metrics = MetricsRegistry()
