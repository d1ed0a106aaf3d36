"""
Platform domain
"""
