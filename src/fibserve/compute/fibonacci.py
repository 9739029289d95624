"""
Fibonacci implementations.

The service always dispatches to `fibonacci` (iterative, O(n) time, O(1) space).
The other variants exist for cross-checking and for scripts/bench_fibonacci.py.

Sequence convention: F(0) = 0, F(1) = 1, F(n) = F(n-1) + F(n-2).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


def _check_non_negative(n: int) -> None:
    if n < 0:
        msg = f"n must be >= 0, got {n}"
        raise ValueError(msg)


def fibonacci(n: int) -> int:
    """
    Compute the n-th Fibonacci number iteratively.

    Args:
        n: Non-negative index into the sequence.

    Returns:
        F(n).

    Raises:
        ValueError: If n is negative.
    """
    _check_non_negative(n)
    a, b = 0, 1
    for _ in range(n):
        a, b = b, a + b
    return a


def fibonacci_recursive(n: int) -> int:
    """Naive exponential-time recursion. Only usable for small n."""
    _check_non_negative(n)
    if n < 2:
        return n
    return fibonacci_recursive(n - 1) + fibonacci_recursive(n - 2)


def fibonacci_dp(n: int) -> int:
    """Bottom-up table, O(n) time and O(n) space."""
    _check_non_negative(n)
    if n == 0:
        return 0
    table = [0] * (n + 1)
    table[1] = 1
    for i in range(2, n + 1):
        table[i] = table[i - 1] + table[i - 2]
    return table[n]


def fibonacci_memo(n: int, memo: dict[int, int] | None = None) -> int:
    """
    Top-down evaluation with memoization.

    Subproblems are resolved from an explicit stack instead of the call
    stack, so large n does not hit the interpreter recursion limit.

    Args:
        n: Non-negative index into the sequence.
        memo: Optional cache shared across calls. Populated in place.
    """
    _check_non_negative(n)
    if memo is None:
        memo = {}
    memo.setdefault(0, 0)
    memo.setdefault(1, 1)
    pending = [n]
    while pending:
        k = pending[-1]
        if k in memo:
            pending.pop()
            continue
        missing = [i for i in (k - 1, k - 2) if i not in memo]
        if missing:
            pending.extend(missing)
            continue
        memo[k] = memo[k - 1] + memo[k - 2]
        pending.pop()
    return memo[n]


# Name -> implementation, used by the benchmark script
ALGORITHMS: dict[str, Callable[[int], int]] = {
    "iterative": fibonacci,
    "recursive": fibonacci_recursive,
    "dp": fibonacci_dp,
    "memo": fibonacci_memo,
}
