"""
Platform domain entities
"""
