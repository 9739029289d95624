"""
Admission error taxonomy.

Every error carries the HTTP status code it maps to at the service boundary:
- InvalidInputError (400): malformed or out-of-range input, not retried
- RateLimitExceededError (429): daily budget exhausted
- InternalServiceError (500): lock timeout, serialization or compute failure
"""

from __future__ import annotations


class AdmissionError(Exception):
    """Base class for failures surfaced by the admission-controlled service."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(AdmissionError):
    """Raised when n is missing, not an integer, or outside 1..max_input."""

    status_code = 400


class RateLimitExceededError(AdmissionError):
    """Raised when the daily request budget has no headroom left."""

    status_code = 429

    def __init__(self, message: str, current: int = 0, max_daily: int = 0) -> None:
        super().__init__(message)
        self.current = current
        self.max_daily = max_daily


class InternalServiceError(AdmissionError):
    """Raised for unexpected failures inside the service."""

    status_code = 500


class BudgetLockError(InternalServiceError):
    """Raised when the budget guard cannot be acquired within lock_timeout_s."""

    def __init__(self, message: str, waited_s: float = 0.0) -> None:
        super().__init__(message)
        self.waited_s = waited_s
