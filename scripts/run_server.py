#!/usr/bin/env python3
"""
Run the admission-controlled Fibonacci service.

Wires the shared state once at startup and injects it everywhere:
CollectorRegistry -> ServiceMetrics, RequestBudget -> FibonacciService and
BudgetResetScheduler, then serves /fibonacci, /metrics, /health and /ready.

Usage:
    python -m scripts.run_server
    python -m scripts.run_server --port 9000 --max-daily 500
    python -m scripts.run_server --dry-run   # validate config and exit

Environment variables FIBSERVE_HOST, FIBSERVE_PORT, FIBSERVE_MAX_DAILY,
FIBSERVE_MAX_INPUT, FIBSERVE_LOCK_TIMEOUT_S and FIBSERVE_COMPUTE_WORKERS
provide defaults; CLI flags take precedence.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from prometheus_client.registry import CollectorRegistry

from fibserve.admission import BudgetResetScheduler, FibonacciService, RequestBudget
from fibserve.config import ServiceConfig
from fibserve.logging_config import setup_logging
from fibserve.observability import ServiceMetrics
from fibserve.server import start_server, stop_server

logger = logging.getLogger(__name__)


def setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """
    Route SIGINT/SIGTERM to the stop event.

    The handler only sets the event; shutdown happens in run_server's
    finally block so components are stopped exactly once.
    """
    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal %s, initiating shutdown", sig.name)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)


async def run_server(config: ServiceConfig, *, stop_event: asyncio.Event | None = None) -> int:
    """
    Run the service until stop_event is set (or a signal arrives).

    Args:
        config: Validated service configuration.
        stop_event: Optional externally controlled shutdown trigger.

    Returns:
        Exit code (0 = success).
    """
    registry = CollectorRegistry()
    metrics = ServiceMetrics(registry=registry)
    budget = RequestBudget(max_daily=config.max_daily, lock_timeout_s=config.lock_timeout_s)
    service = FibonacciService(
        budget,
        metrics,
        max_input=config.max_input,
        compute_workers=config.compute_workers,
    )
    scheduler = BudgetResetScheduler(budget, metrics=metrics)

    if stop_event is None:
        stop_event = asyncio.Event()
        setup_signal_handlers(stop_event)

    runner = None
    try:
        runner = await start_server(service, metrics, host=config.host, port=config.port)
        scheduler.start()
        await stop_event.wait()
        return 0
    except Exception as e:
        logger.exception("Service failed: %s", e)
        return 1
    finally:
        await scheduler.stop()
        if runner is not None:
            await stop_server(runner)
        # Waits for in-flight computations; keep it off the event loop
        await asyncio.get_running_loop().run_in_executor(None, service.close)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run the admission-controlled Fibonacci service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", type=str, default=None, help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: 8080)")
    parser.add_argument(
        "--max-daily",
        type=int,
        default=None,
        help="Requests admitted per UTC day (default: 1000)",
    )
    parser.add_argument(
        "--max-input",
        type=int,
        default=None,
        help="Largest accepted n (default: 50)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Thread pool size for compute dispatch (default: 4)",
    )
    parser.add_argument(
        "--lock-timeout-s",
        type=float,
        default=None,
        help="Max wait for the budget lock before failing with 500 (default: 5.0)",
    )
    parser.add_argument(
        "--plain-logs",
        action="store_true",
        help="Human-readable logs instead of JSON",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate config and exit without serving",
    )

    args = parser.parse_args()

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_format=not args.plain_logs,
    )

    try:
        config = ServiceConfig.from_env(
            host=args.host,
            port=args.port,
            max_daily=args.max_daily,
            max_input=args.max_input,
            compute_workers=args.workers,
            lock_timeout_s=args.lock_timeout_s,
        )
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    logger.info("Starting fibserve")
    logger.info("  Listen: %s:%d", config.host, config.port)
    logger.info("  Budget: %d requests/day (reset 00:00 UTC)", config.max_daily)
    logger.info("  Max input: %d", config.max_input)
    logger.info("  Compute workers: %d", config.compute_workers)

    if args.dry_run:
        logger.info("Dry-run mode: config valid, exiting")
        return 0

    return asyncio.run(run_server(config))


if __name__ == "__main__":
    sys.exit(main())
