"""
HTTP surface for the Fibonacci service.

Routes:
- GET /fibonacci?n=<int> : admission-controlled compute (200/400/429/500)
- GET /metrics           : Prometheus text exposition of the service registry
- GET /health            : liveness JSON
- GET /ready             : readiness JSON, 503 once the daily budget is used up

Handlers are thin: all admission logic and metrics live in FibonacciService.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from aiohttp import web

from fibserve.admission.errors import InternalServiceError
from fibserve.observability.metrics import METRICS_CONTENT_TYPE

if TYPE_CHECKING:
    from fibserve.admission.service import FibonacciService
    from fibserve.observability.metrics import ServiceMetrics

logger = logging.getLogger(__name__)

# Type alias for aiohttp handler
_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _make_fibonacci_handler(service: FibonacciService) -> _Handler:
    """Create GET /fibonacci handler bound to a service."""

    async def handler(request: web.Request) -> web.Response:
        result = await service.handle(request.query.get("n"))
        return web.Response(
            status=result.status,
            body=result.body,
            content_type=result.content_type,
        )

    return handler


def _make_metrics_handler(metrics: ServiceMetrics) -> _Handler:
    """Create GET /metrics handler bound to the service metrics."""

    async def handler(request: web.Request) -> web.Response:
        body = metrics.snapshot()
        return web.Response(
            body=body,
            content_type=METRICS_CONTENT_TYPE,
            charset="utf-8",
        )

    return handler


def _make_health_handler(started_monotonic: float) -> _Handler:
    """Create GET /health handler."""

    async def handler(request: web.Request) -> web.Response:
        info = {
            "status": "ok",
            "uptime_s": round(time.monotonic() - started_monotonic, 1),
        }
        return web.Response(body=json.dumps(info), content_type="application/json")

    return handler


def _make_ready_handler(service: FibonacciService) -> _Handler:
    """Create GET /ready handler.

    Ready while the budget still has headroom. Returns 200 when ready,
    503 when exhausted or when the budget cannot be read; the body is JSON
    in every case.
    """

    async def handler(request: web.Request) -> web.Response:
        try:
            current, max_daily = await service.budget.snapshot()
        except InternalServiceError as e:
            logger.error("Readiness check failed: %s", e.message)
            info = {"status": "not_ready", "error": "budget unavailable"}
            return web.Response(
                status=503,
                body=json.dumps(info),
                content_type="application/json",
            )
        is_ready = current < max_daily
        info = {
            "status": "ready" if is_ready else "not_ready",
            "budget": f"{current}/{max_daily}",
        }
        return web.Response(
            status=200 if is_ready else 503,
            body=json.dumps(info),
            content_type="application/json",
        )

    return handler


def create_app(service: FibonacciService, metrics: ServiceMetrics) -> web.Application:
    """
    Create aiohttp Application with all service routes.

    Args:
        service: Admission-controlled Fibonacci service.
        metrics: Instrument set served on /metrics.

    Returns:
        aiohttp.web.Application ready to be started.
    """
    app = web.Application()
    app.router.add_get("/fibonacci", _make_fibonacci_handler(service))
    app.router.add_get("/metrics", _make_metrics_handler(metrics))
    app.router.add_get("/health", _make_health_handler(time.monotonic()))
    app.router.add_get("/ready", _make_ready_handler(service))
    return app


async def start_server(
    service: FibonacciService,
    metrics: ServiceMetrics,
    host: str = "0.0.0.0",
    port: int = 8080,
) -> web.AppRunner:
    """
    Start the HTTP server.

    Returns:
        AppRunner (pass to stop_server on shutdown).
    """
    app = create_app(service, metrics)
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    try:
        await site.start()
    except OSError:
        await runner.cleanup()
        raise
    logger.info("Fibonacci service listening on http://%s:%d", host, port)
    return runner


async def stop_server(runner: web.AppRunner) -> None:
    """Stop the HTTP server started by start_server."""
    await runner.cleanup()
    logger.info("Fibonacci service stopped")
