"""Third-party integrations domain.

This module manages integrations with external accounting systems:
- Xero accounting integration (OAuth connection lifecycle and data access)
"""
