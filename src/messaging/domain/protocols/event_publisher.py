"""
Event Publisher Protocol
Fire-and-forget sink for partner events.
"""
from typing import Protocol

from src.messaging.domain.events.partner_events import PartnerEvent


class EventPublisher(Protocol):

    def publish(self, event: PartnerEvent) -> None:
        """Schedule delivery of the event; never blocks on delivery."""
        ...
