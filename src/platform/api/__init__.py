"""
Platform API
"""
