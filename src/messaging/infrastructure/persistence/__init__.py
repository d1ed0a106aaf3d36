"""
Messaging ORM Models
"""
from .models.message_model import MessageModel
from .models.webhook_subscription_model import WebhookSubscriptionModel

__all__ = ["MessageModel", "WebhookSubscriptionModel"]
