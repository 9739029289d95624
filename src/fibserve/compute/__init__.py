"""Pure Fibonacci computations and timing helpers."""

from fibserve.compute.fibonacci import (
    ALGORITHMS,
    fibonacci,
    fibonacci_dp,
    fibonacci_memo,
    fibonacci_recursive,
)
from fibserve.compute.timing import measure_time

__all__ = [
    "ALGORITHMS",
    "fibonacci",
    "fibonacci_dp",
    "fibonacci_memo",
    "fibonacci_recursive",
    "measure_time",
]
