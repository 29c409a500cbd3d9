"""Core application components.

This module provides the foundational components for the Compliance Hub API:
- Application settings and configuration
- Session-scoped key/value storage used by the Xero integration
"""
