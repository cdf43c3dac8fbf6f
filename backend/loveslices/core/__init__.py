# loveslices/core/__init__.py
"""
Core application modules.
Contains essential infrastructure components:
- clock: UTC time helpers
- db: Database configuration and connection management
- errors: Domain error taxonomy
- notifier: Per-user realtime push channel registry
- security: Password hashing and access tokens
"""
