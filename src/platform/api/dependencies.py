"""
Request-level admission helpers shared by every router.

Order on a mutating route: tenant header → rate limits → Idempotency-Key →
quota → handler. A replayed idempotent response never consumes quota.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Iterable, Optional

from fastapi import Depends, Header, Response
from fastapi.responses import Response as RawResponse

from src.dependencies import Container, get_container
from src.platform.application.services.idempotency_cache import validate_idempotency_key
from src.platform.domain.value_objects import AdmissionDecision
from src.shared.exceptions import (
    IdempotencyConflictError,
    InvalidRequestError,
    PlanLimitExceededError,
    RateLimitExceededError,
)
from src.shared.logging import bind_request_context

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAY_HEADER = "Idempotent-Replayed"


def get_tenant_id(x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-Id")) -> str:
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise InvalidRequestError("X-Tenant-Id header is required", details={"header": "X-Tenant-Id"})
    bind_request_context(tenant_id=tenant_id)
    return tenant_id


def get_idempotency_key(
    idempotency_key: Optional[str] = Header(default=None, alias=IDEMPOTENCY_HEADER),
) -> Optional[str]:
    return validate_idempotency_key(idempotency_key)


def rate_limit_headers(decisions: Iterable[AdmissionDecision]) -> dict:
    """Headers of the most constrained decision."""
    decisions = list(decisions)
    if not decisions:
        return {}
    tightest = min(decisions, key=lambda d: (d.allowed, d.remaining))
    return tightest.headers()


async def enforce_rate_limit(
    container: Container,
    tenant_id: str,
    resource_class: str,
    limit: int,
    *,
    sub_key: Optional[str] = None,
) -> AdmissionDecision:
    decision = await container.governor.admit(
        tenant_id,
        resource_class,
        limit,
        container.settings.rate_limit_window_ms,
        sub_key=sub_key,
    )
    if not decision.allowed:
        raise RateLimitExceededError(
            retry_after=decision.retry_after,
            headers=decision.headers(),
            details={"resource_class": resource_class, "limit": limit},
        )
    return decision


async def enforce_quota(container: Container, tenant_id: str, resource_type: str) -> None:
    decision = await container.governor.check_quota(tenant_id, resource_type)
    if not decision.allowed:
        raise PlanLimitExceededError(
            retry_after=decision.retry_after,
            details={
                "resource_type": resource_type,
                "period": decision.period,
                "limit": decision.limit,
                "used": decision.used,
            },
        )


class RateLimit:
    """
    Dependency enforcing the tenant-wide request window for a resource class.

    Sets X-RateLimit-* on the injected response (routes that build their own
    Response copy `decision.headers()` themselves).
    """

    def __init__(self, resource_class: str = "api", *, limit_setting: str = "rate_limit_max_requests") -> None:
        self.resource_class = resource_class
        self.limit_setting = limit_setting

    async def __call__(
        self,
        response: Response,
        tenant_id: str = Depends(get_tenant_id),
        container: Container = Depends(get_container),
    ) -> AdmissionDecision:
        limit = int(getattr(container.settings, self.limit_setting))
        decision = await enforce_rate_limit(container, tenant_id, self.resource_class, limit)
        response.headers.update(decision.headers())
        return decision


async def run_idempotent(
    container: Container,
    tenant_id: str,
    key: Optional[str],
    handler: Callable[[], Awaitable[RawResponse]],
) -> RawResponse:
    """
    Execute `handler` at most once per (tenant, key).

    A completed key replays the stored status and body byte for byte; a key
    whose first request is still running is a 409. Raised errors release the
    claim so the client may retry.
    """
    if key is None:
        return await handler()

    result = await container.idempotency.begin(tenant_id, key)
    if result.in_progress:
        raise IdempotencyConflictError(details={"idempotency_key": key})
    if result.is_duplicate and result.cached_response is not None:
        cached = result.cached_response
        return RawResponse(
            content=cached.body,
            status_code=cached.status,
            media_type=cached.media_type,
            headers={REPLAY_HEADER: "true"},
        )

    try:
        response = await handler()
    except BaseException:
        await container.idempotency.release(tenant_id, key)
        raise
    await container.idempotency.complete(
        tenant_id,
        key,
        response.status_code,
        bytes(response.body),
        response.media_type or "application/json",
    )
    return response
