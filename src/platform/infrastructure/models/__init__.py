"""
Platform ORM models
"""
