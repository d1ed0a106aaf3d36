"""
Messaging infrastructure
"""
