"""
Messaging Domain Entities
"""
from .message import Message
from .webhook_subscription import WebhookSubscription

__all__ = ["Message", "WebhookSubscription"]
