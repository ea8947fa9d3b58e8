"""
Observability Module — Liveness endpoint and metrics.
"""

from .health import HealthServer, create_app
from .metrics import Counter, Gauge, Histogram, MetricsRegistry, metrics

__all__ = [
    "metrics",
    "MetricsRegistry",
    "Counter",
    "Gauge",
    "Histogram",
    "HealthServer",
    "create_app",
]
