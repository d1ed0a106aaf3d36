# /src/shared/utils/retry.py
"""
Exponential backoff schedule.

- backoff_delays(attempts, base_seconds) -> [base, 2*base, 4*base, ...] between attempts
"""

from __future__ import annotations

from typing import List


def backoff_delay(attempt: int, base_seconds: float) -> float:
    """Delay to wait after the given failed attempt (1-based): base * 2**(attempt-1)."""
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    return base_seconds * (2 ** (attempt - 1))


def backoff_delays(attempts: int, base_seconds: float) -> List[float]:
    """Delays between consecutive attempts; len == attempts - 1."""
    return [backoff_delay(i, base_seconds) for i in range(1, attempts)]
