"""
Messaging Domain Events
"""
from .partner_events import PARTNER_EVENTS, PartnerEvent

__all__ = ["PARTNER_EVENTS", "PartnerEvent"]
