"""
Platform infrastructure
"""
