from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class QuotaUsage(BaseModel):
    resource_type: str
    period: str
    used: int
    limit: Optional[int] = None  # None => unlimited
    remaining: Optional[int] = None


class QuotaReport(BaseModel):
    tenant_id: str
    quotas: List[QuotaUsage]
