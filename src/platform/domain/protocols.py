"""
Platform collaborator protocols.
Tenant/plan data is owned elsewhere; governance only reads it.
"""
from __future__ import annotations

from typing import Mapping, Optional, Protocol


class TenantLimitsProvider(Protocol):
    """Tenant/plan lookup."""

    async def get_limits(self, tenant_id: str) -> Mapping[str, Optional[int]]:
        """
        Return {resource_type: limit} for the tenant.

        A missing resource type or a None limit means unlimited.
        """
        ...
