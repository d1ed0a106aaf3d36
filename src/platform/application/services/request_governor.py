"""
Request Governor
Admission control: fixed-window rate limiting and monthly plan quotas.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from src.platform.domain.protocols import TenantLimitsProvider
from src.platform.domain.value_objects import AdmissionDecision, QuotaDecision
from src.shared.exceptions import StoreUnavailableError
from src.shared.infrastructure.cache.cache_protocol import CounterStore
from src.shared.logging import get_logger
from src.shared.utils.crypto import sha256_hex

logger = get_logger(__name__)

# Quota counters outlive their month so late reconciliation can still read them
QUOTA_COUNTER_TTL_MS = 40 * 24 * 3600 * 1000

# Retry-After is whole seconds and must not exceed the window
MIN_WINDOW_MS = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def current_period(now: datetime) -> str:
    return now.strftime("%Y-%m")


def seconds_until_next_period(now: datetime) -> int:
    if now.month == 12:
        nxt = now.replace(year=now.year + 1, month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    else:
        nxt = now.replace(month=now.month + 1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return max(1, math.ceil((nxt - now).total_seconds()))


class RequestGovernor:
    """
    Admission control backed by the shared counter store.

    Rate limiting fails closed: a store error rejects the request for one
    window. Quota checks fail open: a store (or tenant lookup) error admits the
    request and logs it for reconciliation.

    Example:
        governor = RequestGovernor(store, limits)
        decision = await governor.admit(tenant_id, "whatsapp", 70, 60_000, sub_key=to)
        if not decision.allowed:
            raise RateLimitExceededError(retry_after=decision.retry_after)
    """

    def __init__(
        self,
        store: CounterStore,
        limits: TenantLimitsProvider,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._limits = limits
        self._clock = clock

    # ---------- keys ----------

    @staticmethod
    def rate_key(tenant_key: str, resource_class: str, sub_key: Optional[str] = None) -> str:
        parts = ["ratelimit", str(tenant_key), resource_class]
        if sub_key:
            # recipient numbers never appear in store keys
            parts.append(sha256_hex(sub_key)[:16])
        return ":".join(parts)

    @staticmethod
    def quota_key(tenant_id: str, resource_type: str, period: str) -> str:
        return f"quota:{tenant_id}:{resource_type}:{period}"

    # ---------- rate limiting ----------

    async def admit(
        self,
        tenant_key: str,
        resource_class: str,
        limit: int,
        window_ms: int,
        *,
        sub_key: Optional[str] = None,
    ) -> AdmissionDecision:
        """
        Count one request against a fixed window and decide admission.

        Args:
            tenant_key: Tenant id (or "anonymous")
            resource_class: Logical bucket, e.g. "api", "whatsapp", "create"
            limit: Max admitted requests per window
            window_ms: Window length in milliseconds (at least one second)
            sub_key: Optional narrower scope, e.g. the recipient phone number

        Returns:
            AdmissionDecision with remaining budget and Retry-After seconds
        """
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_ms < MIN_WINDOW_MS:
            raise ValueError(f"window_ms must be at least {MIN_WINDOW_MS}")
        max_retry_after = window_ms // 1000

        key = self.rate_key(tenant_key, resource_class, sub_key)
        now = self._clock()
        try:
            count, ttl_ms = await self._store.incr_window(key, window_ms)
        except StoreUnavailableError as e:
            logger.error(
                "Rate limit store unavailable; rejecting",
                tenant_id=tenant_key,
                resource_class=resource_class,
                error=str(e),
            )
            return AdmissionDecision(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_at=now + timedelta(milliseconds=window_ms),
                retry_after=max_retry_after,
            )

        ttl_ms = ttl_ms if 0 <= ttl_ms <= window_ms else window_ms
        allowed = count <= limit
        decision = AdmissionDecision(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=now + timedelta(milliseconds=ttl_ms),
            retry_after=max(1, min(math.ceil(ttl_ms / 1000), max_retry_after)),
        )
        if not allowed:
            logger.info(
                "Rate limit exceeded",
                tenant_id=tenant_key,
                resource_class=resource_class,
                limit=limit,
                count=count,
                retry_after=decision.retry_after,
            )
        return decision

    # ---------- plan quotas ----------

    async def _limit_for(self, tenant_id: str, resource_type: str) -> Optional[int]:
        limits = await self._limits.get_limits(tenant_id)
        value = limits.get(resource_type)
        return None if value is None else int(value)

    async def check_quota(
        self,
        tenant_id: str,
        resource_type: str,
        period: Optional[str] = None,
    ) -> QuotaDecision:
        """
        Consume one unit of the tenant's monthly quota for a resource type.

        The counter is period-based: it only ever grows within a period, so
        deleting a resource does not give the unit back. An over-limit
        increment is rolled back before rejecting.
        """
        now = self._clock()
        period = period or current_period(now)
        key = self.quota_key(tenant_id, resource_type, period)

        try:
            limit = await self._limit_for(tenant_id, resource_type)
            used, _ = await self._store.incr_window(key, QUOTA_COUNTER_TTL_MS)
            if limit is not None and used > limit:
                used = await self._store.decr(key)
                logger.info(
                    "Plan limit exceeded",
                    tenant_id=tenant_id,
                    resource_type=resource_type,
                    period=period,
                    limit=limit,
                )
                return QuotaDecision(
                    allowed=False,
                    resource_type=resource_type,
                    period=period,
                    used=used,
                    limit=limit,
                    retry_after=seconds_until_next_period(now),
                )
        except Exception as e:  # store or tenant lookup: fail open
            logger.warning(
                "quota_check_failed_open",
                tenant_id=tenant_id,
                resource_type=resource_type,
                period=period,
                error=str(e),
                error_type=e.__class__.__name__,
            )
            return QuotaDecision(
                allowed=True,
                resource_type=resource_type,
                period=period,
                used=0,
                limit=None,
                degraded=True,
            )

        return QuotaDecision(
            allowed=True,
            resource_type=resource_type,
            period=period,
            used=used,
            limit=limit,
        )

    async def quota_usage(
        self,
        tenant_id: str,
        resource_type: str,
        period: Optional[str] = None,
    ) -> QuotaDecision:
        """Read-only view of a quota counter."""
        now = self._clock()
        period = period or current_period(now)
        limit = await self._limit_for(tenant_id, resource_type)
        try:
            raw = await self._store.get(self.quota_key(tenant_id, resource_type, period))
        except StoreUnavailableError as e:
            logger.warning("Quota usage unavailable", tenant_id=tenant_id, error=str(e))
            return QuotaDecision(
                allowed=True, resource_type=resource_type, period=period, used=0, limit=limit, degraded=True
            )
        used = int(raw) if raw else 0
        return QuotaDecision(
            allowed=limit is None or used < limit,
            resource_type=resource_type,
            period=period,
            used=used,
            limit=limit,
        )
