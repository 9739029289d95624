"""
Service configuration.

All values are fixed at start time; there is no runtime reconfiguration.
Defaults can be overridden from FIBSERVE_* environment variables via
ServiceConfig.from_env(), and CLI flags in scripts/run_server.py override both.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields

MAX_INPUT_CEILING = 10_000
MAX_COMPUTE_WORKERS = 64

ENV_PREFIX = "FIBSERVE_"


@dataclass
class ServiceConfig:
    """Configuration for the Fibonacci service and its HTTP listener."""

    host: str = "0.0.0.0"
    port: int = 8080

    # Admission
    max_daily: int = 1000
    max_input: int = 50
    lock_timeout_s: float = 5.0

    # Size of the thread pool reserved for CPU-bound compute
    compute_workers: int = 4

    def __post_init__(self) -> None:
        """Validate config values at construction time."""
        if not self.host:
            msg = "host must not be empty"
            raise ValueError(msg)
        if not 0 <= self.port <= 65535:
            msg = f"port must be 0..65535, got {self.port}"
            raise ValueError(msg)
        if self.max_daily < 1:
            msg = f"max_daily must be >= 1, got {self.max_daily}"
            raise ValueError(msg)
        if not 1 <= self.max_input <= MAX_INPUT_CEILING:
            msg = f"max_input must be 1..{MAX_INPUT_CEILING}, got {self.max_input}"
            raise ValueError(msg)
        if self.lock_timeout_s <= 0:
            msg = f"lock_timeout_s must be > 0, got {self.lock_timeout_s}"
            raise ValueError(msg)
        if not 1 <= self.compute_workers <= MAX_COMPUTE_WORKERS:
            msg = f"compute_workers must be 1..{MAX_COMPUTE_WORKERS}, got {self.compute_workers}"
            raise ValueError(msg)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: object) -> ServiceConfig:
        """
        Build a config from FIBSERVE_* environment variables.

        Args:
            environ: Mapping to read from (default: os.environ).
            **overrides: Explicit values; None entries are ignored.

        Raises:
            ValueError: On unparseable or out-of-range values.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            try:
                if f.type in ("int", int):
                    values[f.name] = int(raw)
                elif f.type in ("float", float):
                    values[f.name] = float(raw)
                else:
                    values[f.name] = raw
            except ValueError as e:
                msg = f"{ENV_PREFIX}{f.name.upper()} is not a valid {f.type}: {raw!r}"
                raise ValueError(msg) from e
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]
