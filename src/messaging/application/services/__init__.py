"""
Messaging application services
"""
