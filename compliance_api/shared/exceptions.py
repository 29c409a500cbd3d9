# compliance_api/shared/exceptions.py
from fastapi import HTTPException, status


class BaseHTTPException(HTTPException):
    """HTTP exception carrying a stable machine-readable error code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"
    error_code: str | None = None

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            status_code=self.__class__.status_code,
            detail=message or self.__class__.message,
        )


# Authentication & Authorization Exceptions
class InvalidTokenError(BaseHTTPException):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Missing or invalid token"
    error_code = "invalid_token"


class NotAuthorizedError(BaseHTTPException):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Not authorized"
    error_code = "not_authorized"


# Integration Exceptions
class ConfigurationError(BaseHTTPException):
    """Credentials are missing or invalid. Fatal until an admin fixes them."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Xero integration is not configured. Please contact your administrator."
    error_code = "configuration_error"


class RedirectUriMismatchError(ConfigurationError):
    """The callback redirect URI differs from the one used to start the flow."""

    message = "Redirect URI does not match the one used to start authorization"
    error_code = "redirect_uri_mismatch"


class AuthorizationError(BaseHTTPException):
    """State mismatch, expired flow or denied consent. The user must reconnect."""

    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Xero authorization failed. Please reconnect."
    error_code = "authorization_error"


class TokenRefreshError(BaseHTTPException):
    """Refresh token invalid or revoked. Forces full re-authorization."""

    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Xero session has expired. Please reconnect to Xero."
    error_code = "token_refresh_error"


class IntegrationNetworkError(BaseHTTPException):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Could not reach Xero"
    error_code = "network_error"


class IntegrationTimeoutError(BaseHTTPException):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    message = "Xero did not respond in time"
    error_code = "timeout_error"


class ProviderRequestError(BaseHTTPException):
    """Xero answered with an unexpected error status or body."""

    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Xero request failed"
    error_code = "upstream_error"


class TenantNotSelectedError(BaseHTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "No valid Xero organisation selected"
    error_code = "tenant_not_selected"
