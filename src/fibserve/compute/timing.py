"""Wall-clock timing helper for compute functions."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

R = TypeVar("R")


def measure_time(func: Callable[[], R], name: str) -> tuple[R, float]:
    """
    Run func once and log how long it took.

    Args:
        func: Zero-argument callable to time.
        name: Label used in the log line.

    Returns:
        (result, elapsed_seconds).
    """
    start = time.perf_counter()
    result = func()
    elapsed_s = time.perf_counter() - start
    logger.info("Time taken by %s: %.6fs", name, elapsed_s)
    return result, elapsed_s
