"""Events fanned out to partner webhooks."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet

from src.shared.domain.domain_event import DomainEvent

MESSAGE_DELIVERED = "message.delivered"
MESSAGE_READ = "message.read"
MESSAGE_FAILED = "message.failed"
BUTTON_CLICKED = "button.clicked"
LIST_SELECTED = "list.selected"
ORDER_UPDATED = "order.updated"
ORDER_APPROVED = "order.approved"
ORDER_COMPLETED = "order.completed"

PARTNER_EVENTS: FrozenSet[str] = frozenset({
    MESSAGE_DELIVERED,
    MESSAGE_READ,
    MESSAGE_FAILED,
    BUTTON_CLICKED,
    LIST_SELECTED,
    ORDER_UPDATED,
    ORDER_APPROVED,
    ORDER_COMPLETED,
})


@dataclass(frozen=True)
class PartnerEvent(DomainEvent):
    """A named partner event with its JSON-serializable data."""
    name: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.name not in PARTNER_EVENTS:
            raise ValueError(f"Unknown partner event: {self.name!r}")

    @property
    def event_type(self) -> str:
        return self.name
