"""
Platform module: tenants, admission control and idempotency
"""
