"""
Channel provider adapters
"""
