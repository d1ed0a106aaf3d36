"""
Platform routes
"""
