from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet
from uuid import UUID, uuid4


@dataclass
class WebhookSubscription:
    """A partner endpoint subscribed to a subset of partner events for one tenant."""
    tenant_id: str
    url: str
    events: FrozenSet[str]
    secret: str
    active: bool = True
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def wants(self, event: str) -> bool:
        return self.active and event in self.events

    def to_dict(self) -> Dict[str, Any]:
        # secret is write-only
        return {
            "id": str(self.id),
            "url": self.url,
            "events": sorted(self.events),
            "active": self.active,
            "created_at": self.created_at.isoformat(),
        }
