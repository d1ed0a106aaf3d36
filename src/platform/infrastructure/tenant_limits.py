"""
Tenant limit providers.
Resolve a tenant's effective per-resource limits (plan defaults + overrides).
"""
from __future__ import annotations

from typing import Dict, Mapping, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.platform.domain.entities.tenant import Tenant, TenantPlan, TenantStatus
from src.platform.infrastructure.models.tenant_model import TenantModel
from src.shared.logging import get_logger

logger = get_logger(__name__)


class StaticTenantLimitsProvider:
    """
    In-process tenants; unknown tenants get the default plan.

    Used for local runs (no DATABASE_URL) and tests.
    """

    def __init__(
        self,
        tenants: Optional[Mapping[str, Tenant]] = None,
        *,
        default_plan: TenantPlan = TenantPlan.START,
    ) -> None:
        self._tenants: Dict[str, Tenant] = dict(tenants or {})
        self._default_plan = default_plan

    def put(self, tenant: Tenant) -> None:
        self._tenants[tenant.id] = tenant

    async def get_limits(self, tenant_id: str) -> Mapping[str, Optional[int]]:
        tenant = self._tenants.get(str(tenant_id)) or Tenant(id=str(tenant_id), plan=self._default_plan)
        return tenant.effective_limits()


def _to_domain(row: TenantModel) -> Tenant:
    return Tenant(
        id=str(row.id),
        plan=TenantPlan(row.plan),
        status=TenantStatus(row.status),
        limits=dict(row.limits or {}),
    )


class SqlTenantLimitsProvider:
    """Reads tenants from PostgreSQL."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        default_plan: TenantPlan = TenantPlan.START,
    ) -> None:
        self._session_factory = session_factory
        self._default_plan = default_plan

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        try:
            key = UUID(str(tenant_id))
        except ValueError:
            return None
        async with self._session_factory() as session:
            row = (
                await session.execute(select(TenantModel).where(TenantModel.id == key))
            ).scalars().first()
        return _to_domain(row) if row else None

    async def get_limits(self, tenant_id: str) -> Mapping[str, Optional[int]]:
        tenant = await self.get_tenant(tenant_id)
        if tenant is None:
            logger.warning("Unknown tenant; using default plan", tenant_id=tenant_id)
            tenant = Tenant(id=str(tenant_id), plan=self._default_plan)
        return tenant.effective_limits()
