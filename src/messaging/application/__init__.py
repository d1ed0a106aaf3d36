"""
Messaging application layer
"""
