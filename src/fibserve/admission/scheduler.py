"""
Daily budget reset at 00:00 UTC.

BudgetResetScheduler runs as a single long-lived asyncio task. It sleeps
until the next UTC day boundary, resets the shared RequestBudget under the
same lock the admission path uses, logs the event, and repeats. After each
wake-up the next boundary is computed from the current clock, so firings
missed while the process was paused are skipped rather than replayed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fibserve.admission.budget import RequestBudget
    from fibserve.observability.metrics import ServiceMetrics

logger = logging.getLogger(__name__)


def next_reset_at(now: datetime) -> datetime:
    """Return the first 00:00 UTC strictly after now."""
    now_utc = now.astimezone(UTC)
    midnight = now_utc.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(days=1)


def seconds_until_next_reset(now: datetime) -> float:
    """Seconds from now until the next 00:00 UTC boundary (always > 0)."""
    return (next_reset_at(now) - now.astimezone(UTC)).total_seconds()


def _utc_now() -> datetime:
    return datetime.now(UTC)


class BudgetResetScheduler:
    """
    Background task that zeroes the request budget at every UTC midnight.

    The clock and sleep function are injectable so tests can drive firings
    deterministically.

    Usage:
        scheduler = BudgetResetScheduler(budget, metrics=metrics)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        budget: RequestBudget,
        *,
        metrics: ServiceMetrics | None = None,
        time_fn: Callable[[], datetime] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._budget = budget
        self._metrics = metrics
        self._time_fn = time_fn or _utc_now
        self._sleep_fn = sleep_fn or asyncio.sleep
        self._task: asyncio.Task[None] | None = None
        self.fired = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the reset loop on the running event loop. Idempotent."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="budget-reset-scheduler")
        logger.info("Budget reset scheduler started (daily at 00:00 UTC)")

    async def stop(self) -> None:
        """Cancel the reset loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Budget reset scheduler stopped")

    async def fire(self) -> int:
        """
        Reset the budget now.

        Returns:
            The counter value immediately before the reset.
        """
        previous = await self._budget.reset()
        self.fired += 1
        if self._metrics is not None:
            self._metrics.set_budget(0, self._budget.max_daily)
        logger.info(
            "Daily request budget reset (previous=%d, max_daily=%d)",
            previous,
            self._budget.max_daily,
        )
        return previous

    async def _run(self) -> None:
        while True:
            delay_s = seconds_until_next_reset(self._time_fn())
            logger.debug("Next budget reset in %.1fs", delay_s)
            await self._sleep_fn(delay_s)
            try:
                await self.fire()
            except Exception:
                # Keep the schedule alive; the next boundary will try again
                logger.exception("Budget reset failed")
