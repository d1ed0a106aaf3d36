"""
Messaging routes
"""
