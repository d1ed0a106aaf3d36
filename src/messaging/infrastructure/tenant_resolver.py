"""Resolves inbound WhatsApp traffic to a tenant by business phone number id."""
from __future__ import annotations

from typing import Mapping, Optional


class StaticTenantResolver:
    """phone_number_id -> tenant_id map, from WA_PHONE_NUMBER_TENANTS."""

    def __init__(self, mapping: Mapping[str, str]) -> None:
        self._mapping = dict(mapping)

    async def resolve(self, phone_number_id: str) -> Optional[str]:
        return self._mapping.get(str(phone_number_id))
