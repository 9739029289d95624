#!/usr/bin/env python3
"""
Compare Fibonacci implementations on a single n.

Prints the iterative result, then times each algorithm once.
The naive recursive variant is skipped above --recursive-limit.

Usage:
    python -m scripts.bench_fibonacci 30
    python -m scripts.bench_fibonacci 35 --recursive-limit 40
"""

from __future__ import annotations

import argparse
import logging
import sys

from fibserve.compute import ALGORITHMS, fibonacci, measure_time
from fibserve.logging_config import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_RECURSIVE_LIMIT = 32


def run_benchmark(n: int, *, recursive_limit: int = DEFAULT_RECURSIVE_LIMIT) -> dict[str, float]:
    """
    Time every algorithm for n.

    Returns:
        Algorithm name -> elapsed seconds (skipped algorithms are absent).

    Raises:
        RuntimeError: If an algorithm disagrees with the iterative result.
    """
    expected = fibonacci(n)
    timings: dict[str, float] = {}
    for name, func in ALGORITHMS.items():
        if name == "recursive" and n > recursive_limit:
            logger.info("Skipping %s for n=%d (limit %d)", name, n, recursive_limit)
            continue
        result, elapsed_s = measure_time(lambda f=func: f(n), name)  # type: ignore[misc]
        if result != expected:
            msg = f"{name} returned {result} for n={n}, expected {expected}"
            raise RuntimeError(msg)
        timings[name] = elapsed_s
    return timings


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Benchmark Fibonacci implementations.")
    parser.add_argument("n", type=int, help="Index into the Fibonacci sequence")
    parser.add_argument(
        "--recursive-limit",
        type=int,
        default=DEFAULT_RECURSIVE_LIMIT,
        help=f"Largest n for the naive recursive variant (default: {DEFAULT_RECURSIVE_LIMIT})",
    )
    args = parser.parse_args()

    setup_logging(json_format=False)

    if args.n < 0:
        logger.error("n must be >= 0, got %d", args.n)
        return 1

    print(f"fibonacci({args.n}) = {fibonacci(args.n)}")
    try:
        timings = run_benchmark(args.n, recursive_limit=args.recursive_limit)
    except RecursionError:
        logger.error(
            "Recursion limit exceeded for n=%d; lower --recursive-limit", args.n
        )
        return 1
    except RuntimeError as e:
        logger.error("%s", e)
        return 1
    for name, elapsed_s in sorted(timings.items(), key=lambda item: item[1]):
        print(f"  {name:10s} {elapsed_s * 1000:10.3f} ms")
    return 0


if __name__ == "__main__":
    sys.exit(main())
