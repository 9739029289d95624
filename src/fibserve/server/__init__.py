"""aiohttp HTTP surface: /fibonacci, /metrics, /health, /ready."""

from fibserve.server.http_server import create_app, start_server, stop_server

__all__ = [
    "create_app",
    "start_server",
    "stop_server",
]
