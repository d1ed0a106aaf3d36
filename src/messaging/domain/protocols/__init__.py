"""
Messaging Domain Protocols
"""
from .channel_provider import ChannelProvider
from .event_publisher import EventPublisher
from .message_store import MessageStore
from .subscription_store import SubscriptionStore
from .tenant_resolver import TenantResolver

__all__ = [
    "ChannelProvider",
    "EventPublisher",
    "MessageStore",
    "SubscriptionStore",
    "TenantResolver",
]
