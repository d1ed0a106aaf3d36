"""
In-process counter store
"""
