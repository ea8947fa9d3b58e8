"""
Metrics — Operational counters for the sync loop.

Small in-process registry rendered in the Prometheus text format at
``GET /metrics``.

## Usage

    from syncer.observability.metrics import metrics

    metrics.increment("ticks_total", labels={"action": "updated"})
    metrics.timing("tick_duration_seconds", 1.2)
    metrics.set_gauge("last_success_timestamp_seconds", time.time())

    output = metrics.export_prometheus()
"""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

Labels = Optional[Dict[str, str]]
LabelKey = Tuple[Tuple[str, str], ...]


def _labels_key(labels: Labels) -> LabelKey:
    if not labels:
        return ()
    return tuple(sorted(labels.items()))


def _format_labels(key: LabelKey) -> str:
    if not key:
        return ""
    pairs = [f'{k}="{v}"' for k, v in key]
    return "{" + ",".join(pairs) + "}"


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self._values: Dict[LabelKey, float] = defaultdict(float)
        self._lock = Lock()

    def get(self, labels: Labels = None) -> float:
        return self._values.get(_labels_key(labels), 0)

    def lines(self) -> List[str]:
        return [f"{self.name}{_format_labels(k)} {v}" for k, v in sorted(self._values.items())]


class Counter(_Metric):
    """A monotonically increasing counter."""

    kind = "counter"

    def inc(self, value: float = 1, labels: Labels = None) -> None:
        if value < 0:
            raise ValueError("counters only go up")
        with self._lock:
            self._values[_labels_key(labels)] += value


class Gauge(_Metric):
    """A value that can go up and down."""

    kind = "gauge"

    def set(self, value: float, labels: Labels = None) -> None:
        with self._lock:
            self._values[_labels_key(labels)] = value


class Histogram:
    """A histogram for timing distributions."""

    kind = "histogram"
    DEFAULT_BUCKETS = (0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300, float("inf"))

    def __init__(self, name: str, help_text: str = "", buckets: Optional[tuple] = None):
        self.name = name
        self.help_text = help_text
        self.buckets = buckets or self.DEFAULT_BUCKETS
        self._counts: Dict[float, int] = defaultdict(int)
        self._sum = 0.0
        self._count = 0
        self._lock = Lock()

    def observe(self, value: float) -> None:
        with self._lock:
            self._sum += value
            self._count += 1
            for bucket in self.buckets:
                if value <= bucket:
                    self._counts[bucket] += 1

    @property
    def count(self) -> int:
        return self._count

    def lines(self) -> List[str]:
        out = []
        for bucket in self.buckets:
            le = "+Inf" if bucket == float("inf") else str(bucket)
            out.append(f'{self.name}_bucket{{le="{le}"}} {self._counts.get(bucket, 0)}')
        out.append(f"{self.name}_sum {self._sum}")
        out.append(f"{self.name}_count {self._count}")
        return out


class MetricsRegistry:
    """Central registry for all syncer metrics."""

    def __init__(self, prefix: str = "syncer"):
        self.prefix = prefix
        self._metrics: Dict[str, Any] = {}
        self._lock = Lock()

        self._get(Counter, "ticks_total", "Completed reconciliations by action")
        self._get(Counter, "tick_errors_total", "Failed reconciliations by error class")
        self._get(Histogram, "tick_duration_seconds", "Reconciliation duration")
        self._get(Gauge, "last_success_timestamp_seconds", "Unix time of the last successful reconciliation")

    def _get(self, cls, name: str, help_text: str = ""):
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
        return self._get(Counter, name, help_text)

    def gauge(self, name: str, help_text: str = "") -> Gauge:
        return self._get(Gauge, name, help_text)

    def histogram(self, name: str, help_text: str = "") -> Histogram:
        return self._get(Histogram, name, help_text)

    # Convenience methods
    def increment(self, name: str, value: float = 1, labels: Labels = None) -> None:
        self.counter(name).inc(value, labels)

    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        self.gauge(name).set(value, labels)

    def timing(self, name: str, seconds: float) -> None:
        self.histogram(name).observe(seconds)

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []
        for metric in self._metrics.values():
            lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            lines.extend(metric.lines())
        return "\n".join(lines) + "\n"


# Global metrics instance
metrics = MetricsRegistry()
