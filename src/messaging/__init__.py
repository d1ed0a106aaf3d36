"""
Messaging module: outbound dispatch, inbound webhooks and partner events
"""
