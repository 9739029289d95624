"""
Tests for FibonacciService (the admission-controlled handler).

Covers:
- Validation bounds (0, max_input, max_input + 1, non-integers)
- Pre-admission observation of n, including rejected requests
- Budget exhaustion, limit-reached counter and recovery after reset
- Compute offloaded to the worker pool without blocking the event loop
- Internal failures mapped to 500 and counted
- Status-code counter completeness
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterator

import orjson
import pytest
from prometheus_client.registry import CollectorRegistry

from fibserve.admission import (
    BudgetResetScheduler,
    FibonacciService,
    InvalidInputError,
    RateLimitExceededError,
    RequestBudget,
)
from fibserve.observability import ServiceMetrics


def _status_total(registry: CollectorRegistry) -> float:
    """Sum of fibserve_responses_total across all code labels."""
    total = 0.0
    for family in registry.collect():
        if family.name == "fibserve_responses":
            total += sum(s.value for s in family.samples if s.name == "fibserve_responses_total")
    return total


@pytest.fixture()
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture()
def metrics(registry: CollectorRegistry) -> ServiceMetrics:
    return ServiceMetrics(registry=registry)


@pytest.fixture()
def service(metrics: ServiceMetrics) -> Iterator[FibonacciService]:
    svc = FibonacciService(RequestBudget(max_daily=1000), metrics, max_input=50)
    yield svc
    svc.close()


def _make_service(
    metrics: ServiceMetrics, *, max_daily: int = 3, max_input: int = 50, **kwargs: object
) -> FibonacciService:
    return FibonacciService(
        RequestBudget(max_daily=max_daily),
        metrics,
        max_input=max_input,
        **kwargs,  # type: ignore[arg-type]
    )


class TestValidation:
    """n must be an integer in 1..max_input."""

    @pytest.mark.asyncio
    async def test_zero_rejected(self, service: FibonacciService) -> None:
        with pytest.raises(InvalidInputError, match="n must be >= 1"):
            await service.compute(0)

    @pytest.mark.asyncio
    async def test_negative_rejected(self, service: FibonacciService) -> None:
        with pytest.raises(InvalidInputError, match="n must be >= 1"):
            await service.compute(-4)

    @pytest.mark.asyncio
    async def test_above_max_input_rejected(self, service: FibonacciService) -> None:
        with pytest.raises(InvalidInputError, match="n must be <= 50"):
            await service.compute(51)

    @pytest.mark.asyncio
    async def test_max_input_accepted(self, service: FibonacciService) -> None:
        result = await service.compute(50)
        assert result.value == 12586269025

    @pytest.mark.asyncio
    async def test_invalid_input_does_not_charge_budget(self, service: FibonacciService) -> None:
        for bad in ("0", "51", "abc", None):
            response = await service.handle(bad)
            assert response.status == 400
        assert await service.budget.snapshot() == (0, 1000)

    @pytest.mark.parametrize(
        "raw",
        [None, "", "abc", "1.5", "1e3", "5_0", "5.0", " 5 ", "+5", "5\n", "٥", 5.0, True],
    )
    def test_parse_rejects_non_integers(self, service: FibonacciService, raw: object) -> None:
        with pytest.raises(InvalidInputError):
            service.parse(raw)

    def test_parse_accepts_int_strings(self, service: FibonacciService) -> None:
        assert service.parse("13") == 13
        assert service.parse("007") == 7
        assert service.parse("-3") == -3
        assert service.parse(8) == 8

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["5_0", "5.0", " 5 ", "+5"])
    async def test_loosely_formatted_n_not_computed(
        self, service: FibonacciService, raw: str
    ) -> None:
        response = await service.handle(raw)
        assert response.status == 400
        assert orjson.loads(response.body) == {"error": f"n must be an integer, got {raw!r}"}
        assert await service.budget.snapshot() == (0, 1000)

    @pytest.mark.asyncio
    async def test_missing_n_message(self, service: FibonacciService) -> None:
        response = await service.handle(None)
        assert response.status == 400
        assert orjson.loads(response.body) == {"error": "query parameter 'n' is required"}

    def test_invalid_max_input(self, metrics: ServiceMetrics) -> None:
        with pytest.raises(ValueError, match="max_input"):
            FibonacciService(RequestBudget(), metrics, max_input=0)


class TestSuccess:
    """Admitted requests compute and serialize correctly."""

    @pytest.mark.asyncio
    async def test_handle_returns_json_integer(self, service: FibonacciService) -> None:
        response = await service.handle("10")
        assert response.status == 200
        assert response.content_type == "application/json"
        assert response.body == b"55"
        assert orjson.loads(response.body) == 55

    @pytest.mark.asyncio
    async def test_success_metrics(
        self, service: FibonacciService, registry: CollectorRegistry
    ) -> None:
        await service.handle("12")

        assert registry.get_sample_value("fibserve_requests_total") == 1.0
        assert registry.get_sample_value("fibserve_responses_total", {"code": "200"}) == 1.0
        assert registry.get_sample_value("fibserve_request_duration_seconds_count") == 1.0
        assert registry.get_sample_value("fibserve_response_size_bytes_sum") == 3.0  # b"144"
        assert registry.get_sample_value("fibserve_active_requests") == 0.0
        assert registry.get_sample_value("fibserve_last_input") == 12.0
        assert registry.get_sample_value("fibserve_budget_current") == 1.0
        assert registry.get_sample_value("fibserve_budget_max") == 1000.0

    @pytest.mark.asyncio
    async def test_repeated_requests_identical(self, service: FibonacciService) -> None:
        bodies = {(await service.handle("30")).body for _ in range(3)}
        assert bodies == {b"832040"}


class TestRateLimit:
    """Daily budget enforcement."""

    @pytest.mark.asyncio
    async def test_example_scenario(
        self, metrics: ServiceMetrics, registry: CollectorRegistry
    ) -> None:
        """max_daily=3: n=5,8,13 succeed, n=21 is throttled, reset admits again."""
        service = _make_service(metrics, max_daily=3)
        try:
            values = [orjson.loads((await service.handle(n)).body) for n in ("5", "8", "13")]
            assert values == [5, 21, 233]
            assert await service.budget.snapshot() == (3, 3)

            rejected = await service.handle("21")
            assert rejected.status == 429
            assert "Daily request limit reached (3/3)" in orjson.loads(rejected.body)["error"]
            assert await service.budget.snapshot() == (3, 3)

            await BudgetResetScheduler(service.budget, metrics=metrics).fire()

            again = await service.handle("5")
            assert again.status == 200
            assert orjson.loads(again.body) == 5
            assert await service.budget.snapshot() == (1, 3)
        finally:
            service.close()

    @pytest.mark.asyncio
    async def test_limit_counter_one_per_rejection(
        self, metrics: ServiceMetrics, registry: CollectorRegistry
    ) -> None:
        service = _make_service(metrics, max_daily=2)
        try:
            await service.handle("1")
            await service.handle("2")
            for expected in range(1, 6):
                response = await service.handle("3")
                assert response.status == 429
                assert registry.get_sample_value("fibserve_rate_limit_reached_total") == expected
            assert registry.get_sample_value("fibserve_responses_total", {"code": "429"}) == 5.0
        finally:
            service.close()

    @pytest.mark.asyncio
    async def test_compute_raises_rate_limit_error(self, metrics: ServiceMetrics) -> None:
        service = _make_service(metrics, max_daily=1)
        try:
            await service.compute(3)
            with pytest.raises(RateLimitExceededError) as exc_info:
                await service.compute(3)
            assert exc_info.value.current == 1
            assert exc_info.value.max_daily == 1
            assert exc_info.value.status_code == 429
        finally:
            service.close()

    @pytest.mark.asyncio
    async def test_rejected_requests_still_observed(
        self, metrics: ServiceMetrics, registry: CollectorRegistry
    ) -> None:
        service = _make_service(metrics, max_daily=1)
        try:
            await service.handle("4")
            await service.handle("44")  # rejected by budget
            assert registry.get_sample_value("fibserve_last_input") == 44.0
            assert registry.get_sample_value("fibserve_input_value_count") == 2.0
            # Only the admitted request was dispatched
            assert registry.get_sample_value("fibserve_request_duration_seconds_count") == 1.0
        finally:
            service.close()


class TestConcurrency:
    """Concurrent admissions and compute offloading."""

    @pytest.mark.asyncio
    async def test_concurrent_requests_within_headroom(
        self, metrics: ServiceMetrics, registry: CollectorRegistry
    ) -> None:
        service = _make_service(metrics, max_daily=1000, compute_workers=8)
        try:
            for _ in range(250):
                await service.budget.try_consume()

            responses = await asyncio.gather(*(service.handle(str(1 + i % 50)) for i in range(400)))

            assert all(r.status == 200 for r in responses)
            assert await service.budget.snapshot() == (650, 1000)
            assert registry.get_sample_value("fibserve_responses_total", {"code": "200"}) == 400.0
        finally:
            service.close()

    @pytest.mark.asyncio
    async def test_concurrent_requests_past_limit(
        self, metrics: ServiceMetrics, registry: CollectorRegistry
    ) -> None:
        service = _make_service(metrics, max_daily=30)
        try:
            responses = await asyncio.gather(*(service.handle("20") for _ in range(100)))

            statuses = [r.status for r in responses]
            assert statuses.count(200) == 30
            assert statuses.count(429) == 70
            assert registry.get_sample_value("fibserve_rate_limit_reached_total") == 70.0
            assert await service.budget.snapshot() == (30, 30)
        finally:
            service.close()

    @pytest.mark.asyncio
    async def test_compute_does_not_block_event_loop(
        self, metrics: ServiceMetrics, registry: CollectorRegistry
    ) -> None:
        started = threading.Event()
        release = threading.Event()

        def blocking_fib(n: int) -> int:
            started.set()
            release.wait(timeout=5.0)
            return 42

        service = _make_service(metrics, max_daily=10, compute_fn=blocking_fib)
        try:
            task = asyncio.create_task(service.handle("7"))
            while not started.is_set():
                await asyncio.sleep(0.001)

            # Event loop still runs while the computation is blocked in a worker
            await asyncio.sleep(0.01)
            assert not task.done()
            assert registry.get_sample_value("fibserve_active_requests") == 1.0
            assert (await service.budget.snapshot()) == (1, 10)

            release.set()
            response = await task
            assert response.status == 200
            assert response.body == b"42"
            assert registry.get_sample_value("fibserve_active_requests") == 0.0
        finally:
            release.set()
            service.close()

    @pytest.mark.asyncio
    async def test_cancellation_keeps_budget_charge(self, metrics: ServiceMetrics) -> None:
        started = threading.Event()
        release = threading.Event()

        def blocking_fib(n: int) -> int:
            started.set()
            release.wait(timeout=5.0)
            return 1

        service = _make_service(metrics, max_daily=10, compute_fn=blocking_fib)
        try:
            task = asyncio.create_task(service.handle("3"))
            while not started.is_set():
                await asyncio.sleep(0.001)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            assert await service.budget.snapshot() == (1, 10)
        finally:
            release.set()
            service.close()


class TestInternalErrors:
    """Unexpected failures map to 500, are logged and counted."""

    @pytest.mark.asyncio
    async def test_serialization_overflow_is_500(
        self, metrics: ServiceMetrics, registry: CollectorRegistry
    ) -> None:
        # F(100) does not fit in 64 bits, so orjson refuses to encode it
        service = _make_service(metrics, max_daily=5, max_input=100)
        try:
            response = await service.handle("100")
            assert response.status == 500
            assert orjson.loads(response.body) == {"error": "internal server error"}
            assert registry.get_sample_value("fibserve_responses_total", {"code": "500"}) == 1.0
        finally:
            service.close()

    @pytest.mark.asyncio
    async def test_compute_failure_is_500_and_logged(
        self,
        metrics: ServiceMetrics,
        registry: CollectorRegistry,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        def broken(n: int) -> int:
            raise RuntimeError("worker crashed")

        service = _make_service(metrics, compute_fn=broken)
        try:
            response = await service.handle("5")
            assert response.status == 500
            assert "Fibonacci request failed" in caplog.text
            assert registry.get_sample_value("fibserve_active_requests") == 0.0
        finally:
            service.close()

        # Server state is intact: the budget guard was released
        assert not service.budget.locked

    @pytest.mark.asyncio
    async def test_lock_timeout_is_500(
        self, metrics: ServiceMetrics, registry: CollectorRegistry
    ) -> None:
        budget = RequestBudget(max_daily=5, lock_timeout_s=0.02)
        service = FibonacciService(budget, metrics)
        try:
            await budget._lock.acquire()
            try:
                response = await service.handle("5")
            finally:
                budget._lock.release()
            assert response.status == 500
            assert registry.get_sample_value("fibserve_responses_total", {"code": "500"}) == 1.0

            # Guard recovers for subsequent requests
            assert (await service.handle("5")).status == 200
        finally:
            service.close()


class TestOutcomeAudit:
    """Status-code counter total equals requests handled."""

    @pytest.mark.asyncio
    async def test_status_counter_is_complete(
        self, metrics: ServiceMetrics, registry: CollectorRegistry
    ) -> None:
        service = _make_service(metrics, max_daily=3, max_input=100)
        try:
            inputs = ["1", "0", "x", "2", None, "100", "3", "4", "101"]
            responses = [await service.handle(raw) for raw in inputs]
        finally:
            service.close()

        statuses = [r.status for r in responses]
        # "100" is admitted (charging the budget) but fails to serialize
        assert statuses == [200, 400, 400, 200, 400, 500, 429, 429, 400]
        assert _status_total(registry) == len(inputs)
        assert registry.get_sample_value("fibserve_requests_total") == len(inputs)
