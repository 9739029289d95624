"""
Admission-controlled Fibonacci service.

Request flow (fixed order):
    parse -> validate -> observe input -> check/consume budget -> dispatch -> respond

`compute()` raises AdmissionError subclasses; `handle()` is the boundary that
turns every outcome into a ServiceResponse and records it in metrics, so the
per-status-code counter is a complete audit of handled requests.

The budget is charged at admission time. A request cancelled after admission
(client disconnect, transport timeout) keeps its charge.
"""

from __future__ import annotations

import asyncio
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from pydantic import ValidationError

from fibserve.admission.errors import (
    InternalServiceError,
    InvalidInputError,
    RateLimitExceededError,
)
from fibserve.admission.models import FibonacciRequest, FibonacciResult, ServiceResponse
from fibserve.compute import fibonacci

if TYPE_CHECKING:
    from collections.abc import Callable
    from concurrent.futures import Executor

    from fibserve.admission.budget import RequestBudget
    from fibserve.observability.metrics import ServiceMetrics

logger = logging.getLogger(__name__)

DEFAULT_MAX_INPUT = 50
INTERNAL_ERROR_MESSAGE = "internal server error"

_DECIMAL_INT = re.compile(r"-?[0-9]+")


class FibonacciService:
    """
    Validates, admits and computes Fibonacci requests.

    Shared state (budget, metrics) is injected by the caller. CPU-bound work
    runs on a thread pool so the event loop keeps accepting connections.

    Usage:
        service = FibonacciService(budget, metrics, max_input=50)
        response = await service.handle(request.query.get("n"))
        ...
        service.close()
    """

    def __init__(
        self,
        budget: RequestBudget,
        metrics: ServiceMetrics,
        *,
        max_input: int = DEFAULT_MAX_INPUT,
        compute_workers: int = 4,
        executor: Executor | None = None,
        compute_fn: Callable[[int], int] = fibonacci,
    ) -> None:
        """
        Initialize the service.

        Args:
            budget: Shared daily request budget.
            metrics: Instrument set to record into.
            max_input: Largest accepted n. Bounds CPU and response size.
            compute_workers: Pool size when the service creates its own executor.
            executor: Optional externally owned executor for compute dispatch.
            compute_fn: Function computing F(n). Injectable for tests.
        """
        if max_input < 1:
            msg = f"max_input must be >= 1, got {max_input}"
            raise ValueError(msg)
        self._budget = budget
        self._metrics = metrics
        self._max_input = max_input
        self._compute_fn = compute_fn
        self._owns_executor = executor is None
        self._executor: Executor = executor or ThreadPoolExecutor(
            max_workers=compute_workers,
            thread_name_prefix="fib-compute",
        )
        self._metrics.set_budget(0, budget.max_daily)

    @property
    def max_input(self) -> int:
        return self._max_input

    @property
    def budget(self) -> RequestBudget:
        return self._budget

    def parse(self, raw_n: object) -> int:
        """
        Coerce a raw query value into an integer n.

        Raises:
            InvalidInputError: If the value is missing or not an integer.
        """
        if raw_n is None or raw_n == "":
            raise InvalidInputError("query parameter 'n' is required")
        # Plain decimal only: no sign prefix, whitespace, underscores or fractions
        if isinstance(raw_n, str) and _DECIMAL_INT.fullmatch(raw_n) is None:
            raise InvalidInputError(f"n must be an integer, got {raw_n!r}")
        try:
            return FibonacciRequest.model_validate(
                {"n": raw_n}, strict=not isinstance(raw_n, str)
            ).n
        except ValidationError as e:
            raise InvalidInputError(f"n must be an integer, got {raw_n!r}") from e

    def validate(self, n: int) -> FibonacciRequest:
        """
        Check n against 1..max_input.

        Raises:
            InvalidInputError: Naming the violated bound.
        """
        if n < 1:
            raise InvalidInputError(f"n must be >= 1, got {n}")
        if n > self._max_input:
            raise InvalidInputError(f"n must be <= {self._max_input}, got {n}")
        return FibonacciRequest(n=n)

    async def compute(self, n: int) -> FibonacciResult:
        """
        Admit and compute a single request.

        Raises:
            InvalidInputError: n outside 1..max_input.
            RateLimitExceededError: Daily budget exhausted (budget unchanged).
            BudgetLockError: Budget guard not acquired in time.
        """
        request = self.validate(n)

        # Observed before the budget decision so rejected load is visible too
        self._metrics.observe_input(request.n)

        decision = await self._budget.try_consume()
        self._metrics.set_budget(decision.current, decision.max_daily)
        if not decision.admitted:
            raise RateLimitExceededError(
                f"Daily request limit reached ({decision.current}/{decision.max_daily}). "
                "Try again after 00:00 UTC.",
                current=decision.current,
                max_daily=decision.max_daily,
            )

        loop = asyncio.get_running_loop()
        with self._metrics.track_dispatch():
            value = await loop.run_in_executor(self._executor, self._compute_fn, request.n)
        return FibonacciResult(n=request.n, value=value)

    async def handle(self, raw_n: object) -> ServiceResponse:
        """
        Service boundary: never raises for request failures.

        Args:
            raw_n: Query value for n (string from HTTP, or int).

        Returns:
            ServiceResponse with status 200, 400, 429 or 500.
        """
        try:
            result = await self.compute(self.parse(raw_n))
            response = ServiceResponse(status=200, body=result.to_body())
        except InvalidInputError as e:
            response = ServiceResponse.error(e.status_code, e.message)
        except RateLimitExceededError as e:
            self._metrics.record_limit_reached()
            logger.debug("Request rejected by daily budget (%d/%d)", e.current, e.max_daily)
            response = ServiceResponse.error(e.status_code, e.message)
        except InternalServiceError as e:
            logger.error("Fibonacci request failed: %s", e.message, exc_info=True)
            response = ServiceResponse.error(e.status_code, INTERNAL_ERROR_MESSAGE)
        except Exception:
            logger.exception("Fibonacci request failed (n=%r)", raw_n)
            response = ServiceResponse.error(500, INTERNAL_ERROR_MESSAGE)

        self._metrics.record_response(response.status, size_bytes=len(response.body))
        return response

    def close(self) -> None:
        """Shut down the compute pool if this service created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=True, cancel_futures=True)
