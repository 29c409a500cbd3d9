"""Xero connection lifecycle.

Components, leaves first:
- CredentialStore: client id/secret/redirect URI configuration
- ConnectionStateStore: single source of truth for connection status
- OAuthStateLedger / OAuthFlowController: authorization URL and callback exchange
- TokenRefreshGuard: authenticated calls with transparent token refresh
- TenantResolver: active organisation selection
- FallbackDataProvider: tiered, time-bounded data retrieval
- XeroSessionRegistry: per-session wiring of the above
"""
