"""fibserve: admission-controlled Fibonacci compute service.

Exposes an iterative Fibonacci computation over HTTP behind a global daily
request budget, with Prometheus instrumentation and a scheduled UTC reset.
"""

__version__ = "0.1.0"
