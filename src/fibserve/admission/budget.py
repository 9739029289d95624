"""
Daily request budget: a fixed-window counter guarded by an asyncio.Lock.

The counter is shared by every request coroutine and the reset scheduler.
All reads and writes go through the same lock; the admission path holds it
only for the read-compare-increment, never for the whole request.

Usage:
    budget = RequestBudget(max_daily=1000)
    decision = await budget.try_consume()
    if not decision.admitted:
        ...  # reject with 429
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fibserve.admission.errors import BudgetLockError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@dataclass(frozen=True)
class BudgetDecision:
    """Outcome of a single check-and-increment."""

    admitted: bool
    current: int  # Counter value after the decision
    max_daily: int


@dataclass
class RequestBudget:
    """
    Guarded "requests served today" counter.

    Invariant: value >= 0. max_daily bounds admission only; the counter itself
    is not clamped. State lives in memory and does not survive a restart.
    """

    max_daily: int = 1000
    lock_timeout_s: float = 5.0

    _value: int = field(default=0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    # Bookkeeping for observability
    resets: int = field(default=0, init=False)
    last_reset_ts: float = field(default=0.0, init=False)

    def __post_init__(self) -> None:
        if self.max_daily < 1:
            msg = f"max_daily must be >= 1, got {self.max_daily}"
            raise ValueError(msg)
        if self.lock_timeout_s <= 0:
            msg = f"lock_timeout_s must be > 0, got {self.lock_timeout_s}"
            raise ValueError(msg)

    @contextlib.asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        """Acquire the lock within lock_timeout_s and release on every exit path."""
        start = time.monotonic()
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self.lock_timeout_s)
        except TimeoutError as e:
            waited_s = time.monotonic() - start
            raise BudgetLockError(
                f"Budget lock not acquired after {waited_s:.3f}s",
                waited_s=waited_s,
            ) from e
        try:
            yield
        finally:
            self._lock.release()

    async def try_consume(self) -> BudgetDecision:
        """
        Atomically check headroom and charge one request.

        Returns:
            BudgetDecision with admitted=False (and no increment) when the
            counter has already reached max_daily.

        Raises:
            BudgetLockError: If the lock cannot be acquired in time.
        """
        async with self._guard():
            if self._value >= self.max_daily:
                return BudgetDecision(admitted=False, current=self._value, max_daily=self.max_daily)
            self._value += 1
            return BudgetDecision(admitted=True, current=self._value, max_daily=self.max_daily)

    async def reset(self) -> int:
        """
        Set the counter back to zero.

        Returns:
            The value immediately before the reset.
        """
        async with self._guard():
            previous = self._value
            self._value = 0
            self.resets += 1
            self.last_reset_ts = time.time()
            return previous

    async def snapshot(self) -> tuple[int, int]:
        """Return (current, max_daily) under the guard."""
        async with self._guard():
            return self._value, self.max_daily

    @property
    def locked(self) -> bool:
        """True while some coroutine holds the guard."""
        return self._lock.locked()
