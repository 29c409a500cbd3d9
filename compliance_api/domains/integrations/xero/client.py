# compliance_api/domains/integrations/xero/client.py
import logging
from typing import Callable, List, Optional

import httpx

from compliance_api.shared.exceptions import (
    AuthorizationError,
    IntegrationNetworkError,
    IntegrationTimeoutError,
    ProviderRequestError,
    TokenRefreshError,
)

from .models import Credentials, XeroTenantInfo, XeroTokenResponse

logger = logging.getLogger(__name__)

# Xero OAuth endpoints
AUTHORIZE_URL = "https://login.xero.com/identity/connect/authorize"
TOKEN_URL = "https://identity.xero.com/connect/token"
CONNECTIONS_URL = "https://api.xero.com/connections"
ACCOUNTING_API_URL = "https://api.xero.com/api.xro/2.0"

HttpClientFactory = Callable[[], httpx.AsyncClient]


def bearer_headers(access_token: str, tenant_id: Optional[str] = None) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/json",
    }
    if tenant_id:
        headers["Xero-Tenant-Id"] = tenant_id
    return headers


class XeroOAuthClient:
    """Raw calls to the Xero identity endpoints. One attempt each, no retries."""

    def __init__(
        self,
        http_client_factory: HttpClientFactory = httpx.AsyncClient,
        timeout: float = 10.0,
    ):
        self.http_client_factory = http_client_factory
        self.timeout = timeout

    async def exchange_code(
        self, credentials: Credentials, code: str, redirect_uri: str
    ) -> XeroTokenResponse:
        """Exchange OAuth authorization code for access tokens."""
        token_data = {
            "grant_type": "authorization_code",
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
        }

        try:
            response = await self._post_token(token_data)
        except httpx.TimeoutException as e:
            raise IntegrationTimeoutError(f"Token exchange timed out: {e}")
        except httpx.RequestError as e:
            raise IntegrationNetworkError(f"Token exchange request failed: {e}")

        if response.status_code >= 400:
            raise AuthorizationError(
                f"Token exchange failed: {self._error_text(response)}"
            )
        return self._parse_token(response)

    async def refresh(
        self, credentials: Credentials, refresh_token: str
    ) -> XeroTokenResponse:
        """
        Exchange a refresh token for a new token pair.

        Raises:
            TokenRefreshError: If Xero rejects the refresh token
            IntegrationTimeoutError: If the token endpoint does not answer in time
            IntegrationNetworkError: If the token endpoint cannot be reached
        """
        refresh_data = {
            "grant_type": "refresh_token",
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "refresh_token": refresh_token,
        }

        try:
            response = await self._post_token(refresh_data)
        except httpx.TimeoutException as e:
            raise IntegrationTimeoutError(f"Token refresh timed out: {e}")
        except httpx.RequestError as e:
            raise IntegrationNetworkError(f"Token refresh request failed: {e}")

        if response.status_code >= 400:
            raise TokenRefreshError(
                f"Token refresh failed: {self._error_text(response)}"
            )
        return self._parse_token(response, error_class=TokenRefreshError)

    async def get_connections(self, access_token: str) -> List[XeroTenantInfo]:
        """List the tenants this access token is authorized for."""
        try:
            async with self.http_client_factory() as client:
                response = await client.get(
                    CONNECTIONS_URL,
                    headers=bearer_headers(access_token),
                    timeout=self.timeout,
                )
        except httpx.TimeoutException as e:
            raise IntegrationTimeoutError(f"Tenant lookup timed out: {e}")
        except httpx.RequestError as e:
            raise IntegrationNetworkError(f"Tenant lookup request failed: {e}")

        if response.status_code >= 400:
            raise ProviderRequestError(
                f"Failed to get tenant info: {self._error_text(response)}"
            )
        try:
            return [XeroTenantInfo.model_validate(item) for item in response.json()]
        except (ValueError, TypeError) as e:
            raise ProviderRequestError(f"Unexpected connections response: {e}")

    async def delete_connection(self, access_token: str, connection_id: str) -> None:
        """Revoke a tenant connection in Xero."""
        try:
            async with self.http_client_factory() as client:
                response = await client.delete(
                    f"{CONNECTIONS_URL}/{connection_id}",
                    headers=bearer_headers(access_token),
                    timeout=self.timeout,
                )
        except httpx.TimeoutException as e:
            raise IntegrationTimeoutError(f"Connection revoke timed out: {e}")
        except httpx.RequestError as e:
            raise IntegrationNetworkError(f"Connection revoke request failed: {e}")

        if response.status_code >= 400:
            raise ProviderRequestError(
                f"Connection revoke failed: {self._error_text(response)}"
            )

    async def _post_token(self, data: dict[str, str]) -> httpx.Response:
        async with self.http_client_factory() as client:
            return await client.post(
                TOKEN_URL,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )

    @staticmethod
    def _parse_token(
        response: httpx.Response, error_class: type = AuthorizationError
    ) -> XeroTokenResponse:
        try:
            return XeroTokenResponse.model_validate(response.json())
        except ValueError as e:
            raise error_class(f"Unexpected token response: {e}")

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(
                body.get("error_description")
                or body.get("error")
                or body.get("Message")
                or body
            )
        return str(body)
