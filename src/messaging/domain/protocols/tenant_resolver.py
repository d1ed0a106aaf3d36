"""
Tenant Resolver Protocol
Attributes inbound provider traffic to a tenant.
"""
from typing import Optional, Protocol


class TenantResolver(Protocol):

    async def resolve(self, phone_number_id: str) -> Optional[str]:
        """Tenant id owning the business phone number, None if unknown."""
        ...
