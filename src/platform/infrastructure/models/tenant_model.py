from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import JSON, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from src.shared.infrastructure.database.base_model import Base


class TenantModel(Base):
    """
    Mirrors public.tenants. Owned by the platform; read-only for governance.

    limits holds per-resource overrides of the plan defaults, e.g.
    {"plates": 250, "messages": null}.
    """
    __tablename__ = "tenants"
    __table_args__ = (
        CheckConstraint("plan IN ('start','pro','max','enterprise')", name="ck_tenants_plan"),
        CheckConstraint("status IN ('active','suspended','cancelled')", name="ck_tenants_status"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    plan: Mapped[str] = mapped_column(String(20), nullable=False, default="start")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    limits: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
