"""
Shared Layer - Cross-Cutting Concerns
"""
