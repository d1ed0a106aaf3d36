from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.dependencies import Container, get_container
from src.platform.api.dependencies import RateLimit, get_tenant_id
from src.platform.api.schemas import QuotaReport, QuotaUsage
from src.platform.domain.entities.tenant import ResourceType

router = APIRouter(prefix="/v1/quotas", tags=["platform:quotas"])


@router.get("", response_model=QuotaReport, dependencies=[Depends(RateLimit("api"))])
async def get_quotas(
    period: Optional[str] = Query(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    tenant_id: str = Depends(get_tenant_id),
    container: Container = Depends(get_container),
) -> QuotaReport:
    usages = []
    for resource in ResourceType:
        d = await container.governor.quota_usage(tenant_id, resource.value, period)
        usages.append(
            QuotaUsage(
                resource_type=d.resource_type,
                period=d.period,
                used=d.used,
                limit=d.limit,
                remaining=d.remaining,
            )
        )
    return QuotaReport(tenant_id=tenant_id, quotas=usages)
