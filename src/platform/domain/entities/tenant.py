from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional


class TenantPlan(str, Enum):
    START = "start"
    PRO = "pro"
    MAX = "max"
    ENTERPRISE = "enterprise"


class TenantStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class ResourceType(str, Enum):
    """Resource types metered against monthly plan limits."""
    PLATES = "plates"
    MESSAGES = "messages"


# None => unlimited
PLAN_LIMITS: Mapping[TenantPlan, Mapping[str, Optional[int]]] = {
    TenantPlan.START: {ResourceType.PLATES.value: 100, ResourceType.MESSAGES.value: 1_000},
    TenantPlan.PRO: {ResourceType.PLATES.value: 500, ResourceType.MESSAGES.value: 10_000},
    TenantPlan.MAX: {ResourceType.PLATES.value: 2_000, ResourceType.MESSAGES.value: 50_000},
    TenantPlan.ENTERPRISE: {ResourceType.PLATES.value: None, ResourceType.MESSAGES.value: None},
}


@dataclass(frozen=True, slots=True)
class Tenant:
    """
    Platform-owned tenant record. Read-only to the governance subsystem.

    `limits` overrides the plan defaults per resource type.
    """
    id: str
    plan: TenantPlan = TenantPlan.START
    status: TenantStatus = TenantStatus.ACTIVE
    limits: Mapping[str, Optional[int]] = field(default_factory=dict)

    def effective_limits(self) -> Dict[str, Optional[int]]:
        merged: Dict[str, Optional[int]] = dict(PLAN_LIMITS.get(self.plan, {}))
        merged.update(self.limits)
        return merged

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE
