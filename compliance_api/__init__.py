"""Compliance Hub API.

Backend for the compliance-management application. The code in this package
owns the Xero connection lifecycle: OAuth authorization, token refresh, tenant
selection and time-bounded retrieval of financial data.
"""
