"""Prometheus instrumentation."""

from fibserve.observability.metrics import (
    METRICS_CONTENT_TYPE,
    REQUIRED_METRIC_NAMES,
    ServiceMetrics,
)

__all__ = [
    "METRICS_CONTENT_TYPE",
    "REQUIRED_METRIC_NAMES",
    "ServiceMetrics",
]
