"""
Messaging ORM Models
"""
