"""Admission control: daily budget, reset scheduling and the Fibonacci service."""

from fibserve.admission.budget import BudgetDecision, RequestBudget
from fibserve.admission.errors import (
    AdmissionError,
    BudgetLockError,
    InternalServiceError,
    InvalidInputError,
    RateLimitExceededError,
)
from fibserve.admission.models import FibonacciRequest, FibonacciResult, ServiceResponse
from fibserve.admission.scheduler import (
    BudgetResetScheduler,
    next_reset_at,
    seconds_until_next_reset,
)
from fibserve.admission.service import FibonacciService

__all__ = [
    "AdmissionError",
    "BudgetDecision",
    "BudgetLockError",
    "BudgetResetScheduler",
    "FibonacciRequest",
    "FibonacciResult",
    "FibonacciService",
    "InternalServiceError",
    "InvalidInputError",
    "RateLimitExceededError",
    "RequestBudget",
    "ServiceResponse",
    "next_reset_at",
    "seconds_until_next_reset",
]
