"""
Prometheus instrumentation for the Fibonacci service.

All instruments are bound to one explicit CollectorRegistry owned by the
caller (created once at startup and injected), never the process-global
default registry. The only label is the response status code, so cardinality
stays fixed.

Metric names:
- fibserve_requests_total              : every handled request
- fibserve_rate_limit_reached_total    : requests rejected by the daily budget
- fibserve_responses_total{code}       : every outcome by HTTP status code
- fibserve_active_requests             : computations currently dispatched
- fibserve_last_input                  : most recent requested n
- fibserve_budget_current              : requests charged in the current window
- fibserve_budget_max                  : configured daily maximum
- fibserve_request_duration_seconds    : compute dispatch latency
- fibserve_response_size_bytes         : response body size
- fibserve_input_value                 : distribution of requested n
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from collections.abc import Iterator

# Prometheus exposition format content type
METRICS_CONTENT_TYPE = "text/plain; version=0.0.4"

DURATION_BUCKETS = (0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)
SIZE_BUCKETS = (2, 4, 8, 16, 32, 64, 128, 256, 512)
INPUT_BUCKETS = (1, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50)


class ServiceMetrics:
    """
    Instrument set for the admission-controlled handler.

    Each instrument is independently safe for concurrent use; no
    cross-instrument atomicity is provided.

    Usage:
        registry = CollectorRegistry()
        metrics = ServiceMetrics(registry=registry)
        metrics.observe_input(10)
        metrics.record_response(200, size_bytes=2)
        body = metrics.snapshot()  # bytes for GET /metrics
    """

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        *,
        input_buckets: tuple[float, ...] = INPUT_BUCKETS,
    ) -> None:
        """
        Initialize instruments.

        Args:
            registry: Prometheus CollectorRegistry. If None, a fresh one is created.
            input_buckets: Bucket bounds for the input-value histogram.
        """
        self._registry = registry or CollectorRegistry()

        # === Counters ===
        self._requests = Counter(
            "fibserve_requests",
            "Total requests handled by the Fibonacci endpoint",
            registry=self._registry,
        )
        self._rate_limit_reached = Counter(
            "fibserve_rate_limit_reached",
            "Requests rejected because the daily budget was exhausted",
            registry=self._registry,
        )
        self._responses = Counter(
            "fibserve_responses",
            "Responses by HTTP status code",
            ["code"],
            registry=self._registry,
        )

        # === Gauges ===
        self._active_requests = Gauge(
            "fibserve_active_requests",
            "Computations currently running on the worker pool",
            registry=self._registry,
        )
        self._last_input = Gauge(
            "fibserve_last_input",
            "Most recently requested n",
            registry=self._registry,
        )
        self._budget_current = Gauge(
            "fibserve_budget_current",
            "Requests charged against the daily budget in the current window",
            registry=self._registry,
        )
        self._budget_max = Gauge(
            "fibserve_budget_max",
            "Configured daily request budget",
            registry=self._registry,
        )

        # === Histograms ===
        self._request_duration = Histogram(
            "fibserve_request_duration_seconds",
            "Time spent computing admitted requests",
            buckets=DURATION_BUCKETS,
            registry=self._registry,
        )
        self._response_size = Histogram(
            "fibserve_response_size_bytes",
            "Response body size in bytes",
            buckets=SIZE_BUCKETS,
            registry=self._registry,
        )
        self._input_value = Histogram(
            "fibserve_input_value",
            "Distribution of requested n, including rejected requests",
            buckets=input_buckets,
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Get the Prometheus CollectorRegistry."""
        return self._registry

    def observe_input(self, n: int) -> None:
        """Record a requested n before the budget decision."""
        self._input_value.observe(n)
        self._last_input.set(n)

    def record_limit_reached(self) -> None:
        self._rate_limit_reached.inc()

    def record_response(self, status_code: int, *, size_bytes: int) -> None:
        """Count one finished request under its status code."""
        self._requests.inc()
        self._responses.labels(code=str(status_code)).inc()
        self._response_size.observe(size_bytes)

    @contextlib.contextmanager
    def track_dispatch(self) -> Iterator[None]:
        """Hold the active-requests gauge and time the enclosed computation."""
        with self._active_requests.track_inprogress(), self._request_duration.time():
            yield

    def set_budget(self, current: int, max_daily: int) -> None:
        self._budget_current.set(current)
        self._budget_max.set(max_daily)

    def snapshot(self) -> bytes:
        """Render the registry in Prometheus text exposition format."""
        return generate_latest(self._registry)


# Exported family names; counters carry the _total suffix added by prometheus_client
REQUIRED_METRIC_NAMES: frozenset[str] = frozenset(
    {
        # Counters
        "fibserve_requests_total",
        "fibserve_rate_limit_reached_total",
        "fibserve_responses_total",
        # Gauges
        "fibserve_active_requests",
        "fibserve_last_input",
        "fibserve_budget_current",
        "fibserve_budget_max",
        # Histograms
        "fibserve_request_duration_seconds",
        "fibserve_response_size_bytes",
        "fibserve_input_value",
    }
)
