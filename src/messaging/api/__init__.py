"""Messaging API module initialization."""
