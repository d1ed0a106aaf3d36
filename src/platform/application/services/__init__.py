"""
Platform application services
"""
