"""
Messaging Repository Implementations
"""
