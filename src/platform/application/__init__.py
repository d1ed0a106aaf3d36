"""
Platform application layer
"""
