from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True, slots=True)
class AdmissionDecision:
    """Outcome of a rate-limit admission check."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after: int  # seconds until the window resets, >= 1

    def headers(self) -> dict[str, str]:
        h = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if not self.allowed:
            h["Retry-After"] = str(self.retry_after)
        return h


@dataclass(frozen=True, slots=True)
class QuotaDecision:
    """Outcome of a monthly plan-quota check."""
    allowed: bool
    resource_type: str
    period: str
    used: int
    limit: Optional[int]  # None => unlimited
    retry_after: int = 0
    degraded: bool = False  # True when the store failed and the check failed open

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.used)


@dataclass(frozen=True, slots=True)
class CachedResponse:
    status: int
    body: bytes
    media_type: str = "application/json"


@dataclass(frozen=True, slots=True)
class IdempotencyResult:
    is_duplicate: bool
    cached_response: Optional[CachedResponse] = None
    in_progress: bool = False

    @property
    def should_execute(self) -> bool:
        return not self.is_duplicate
