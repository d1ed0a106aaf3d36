"""
Messaging request/response schemas
"""
