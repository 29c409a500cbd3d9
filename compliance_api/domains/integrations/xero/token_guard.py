# compliance_api/domains/integrations/xero/token_guard.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from compliance_api.core.settings import Settings
from compliance_api.shared.exceptions import (
    AuthorizationError,
    IntegrationNetworkError,
    IntegrationTimeoutError,
    ProviderRequestError,
    TokenRefreshError,
)

from .client import HttpClientFactory, XeroOAuthClient, bearer_headers
from .credentials import CredentialStore
from .models import ErrorKind, TokenSet, error_kind_for
from .state import ConnectionEvent, ConnectionStateStore, EventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry rules for authenticated calls."""

    max_refresh_attempts: int = 1
    max_request_retries: int = 1
    request_timeout: float = 5.0
    refresh_timeout: float = 5.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            request_timeout=settings.XERO_REQUEST_TIMEOUT,
            refresh_timeout=settings.XERO_TOKEN_EXCHANGE_TIMEOUT,
        )


class TokenRefreshGuard:
    """
    Wraps authenticated Xero calls with transparent token refresh.

    At most one refresh runs per session. It runs as a shared task, so callers
    that hit an expired token while it is in flight await the same outcome,
    and a caller being cancelled never cancels the refresh itself.
    """

    def __init__(
        self,
        state_store: ConnectionStateStore,
        credential_store: CredentialStore,
        oauth_client: XeroOAuthClient,
        http_client_factory: HttpClientFactory = httpx.AsyncClient,
        policy: Optional[RetryPolicy] = None,
    ):
        self.state_store = state_store
        self.credential_store = credential_store
        self.oauth_client = oauth_client
        self.http_client_factory = http_client_factory
        self.policy = policy or RetryPolicy()
        self._refresh_task: Optional["asyncio.Task[TokenSet]"] = None

    async def call_with_auth(
        self,
        method: str,
        url: str,
        tenant_id: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        json: Optional[Any] = None,
    ) -> httpx.Response:
        """
        Issue an authenticated request, refreshing the token when needed.

        An already-expired token is refreshed before the request is sent. An
        unauthorized response triggers one refresh and one retry. Timeouts
        never trigger a refresh.

        Returns:
            The provider response (non-401 error statuses are returned as-is)

        Raises:
            AuthorizationError: If the session has no token set
            TokenRefreshError: If the token could not be refreshed
            ProviderRequestError: If Xero still rejects the refreshed token
            IntegrationTimeoutError / IntegrationNetworkError: Transport failures
        """
        token_set = self._current_token()
        refreshes = 0
        retries = 0

        if token_set.is_expired():
            token_set = await self._refresh(token_set)
            refreshes += 1

        response = await self._send(method, url, token_set, tenant_id, params, headers, json)

        while self._is_unauthorized(response):
            if (
                refreshes >= self.policy.max_refresh_attempts
                or retries >= self.policy.max_request_retries
            ):
                raise ProviderRequestError(
                    "Xero rejected the access token after refresh"
                )
            token_set = await self._refresh(token_set)
            refreshes += 1
            retries += 1
            response = await self._send(
                method, url, token_set, tenant_id, params, headers, json
            )

        return response

    async def refresh_now(self) -> TokenSet:
        """Force a token refresh for the current session."""
        return await self._refresh(self._current_token())

    def _current_token(self) -> TokenSet:
        state = self.state_store.state
        if state.token_set is not None:
            return state.token_set
        if state.last_error is ErrorKind.TOKEN_REFRESH_ERROR:
            raise TokenRefreshError()
        raise AuthorizationError("Not connected to Xero. Please connect first.")

    async def _refresh(self, stale: TokenSet) -> TokenSet:
        task = self._refresh_task
        if task is None or task.done():
            current = self.state_store.token_set
            if current is None:
                raise TokenRefreshError()
            if current.access_token != stale.access_token:
                # Another caller already refreshed
                return current
            task = asyncio.get_running_loop().create_task(self._run_refresh(current))
            task.add_done_callback(self._refresh_done)
            self._refresh_task = task
        return await asyncio.shield(task)

    def _refresh_done(self, task: "asyncio.Task[TokenSet]") -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        # Marks the exception retrieved when every caller has gone away
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Xero token refresh ended with {task.exception()!r}")

    async def _run_refresh(self, current: TokenSet) -> TokenSet:
        if not current.refresh_token:
            self._refresh_failed()
            raise TokenRefreshError("No refresh token available. Please reconnect.")

        credentials = self.credential_store.get_credentials()

        try:
            self.state_store.dispatch(ConnectionEvent(type=EventType.TOKEN_EXPIRING))
            self.state_store.dispatch(ConnectionEvent(type=EventType.REFRESH_STARTED))
            token_response = await asyncio.wait_for(
                self.oauth_client.refresh(credentials, current.refresh_token),
                timeout=self.policy.refresh_timeout,
            )
        except asyncio.TimeoutError:
            self._refresh_aborted(ErrorKind.TIMEOUT_ERROR)
            raise IntegrationTimeoutError("Token refresh timed out")
        except TokenRefreshError:
            self._refresh_failed()
            raise
        except (IntegrationTimeoutError, IntegrationNetworkError) as e:
            self._refresh_aborted(error_kind_for(e))
            raise
        except asyncio.CancelledError:
            self._refresh_aborted(ErrorKind.NETWORK_ERROR)
            raise
        except Exception:
            self._refresh_aborted(ErrorKind.UPSTREAM_ERROR)
            raise

        refreshed = TokenSet.from_token_response(token_response)
        if refreshed.refresh_token is None:
            refreshed = refreshed.model_copy(
                update={"refresh_token": current.refresh_token}
            )

        self.state_store.dispatch(
            ConnectionEvent(type=EventType.TOKEN_REFRESHED, token_set=refreshed)
        )
        logger.info("Xero access token refreshed")
        return refreshed

    def _refresh_failed(self) -> None:
        logger.warning("Xero token refresh failed, session disconnected")
        self.state_store.dispatch(
            ConnectionEvent(
                type=EventType.TOKEN_REFRESH_FAILED,
                error=ErrorKind.TOKEN_REFRESH_ERROR,
            )
        )

    def _refresh_aborted(self, kind: ErrorKind) -> None:
        logger.warning(f"Xero token refresh interrupted: {kind.value}")
        self.state_store.dispatch(
            ConnectionEvent(type=EventType.REFRESH_ABORTED, error=kind)
        )

    async def _send(
        self,
        method: str,
        url: str,
        token_set: TokenSet,
        tenant_id: Optional[str],
        params: Optional[Mapping[str, Any]],
        headers: Optional[Mapping[str, str]],
        json: Optional[Any],
    ) -> httpx.Response:
        request_headers = bearer_headers(token_set.access_token, tenant_id)
        if headers:
            request_headers.update(headers)

        try:
            async with self.http_client_factory() as client:
                return await client.request(
                    method,
                    url,
                    headers=request_headers,
                    params=params,
                    json=json,
                    timeout=self.policy.request_timeout,
                )
        except httpx.TimeoutException as e:
            raise IntegrationTimeoutError(f"Xero request timed out: {e}")
        except httpx.RequestError as e:
            raise IntegrationNetworkError(f"Xero request error: {e}")

    @staticmethod
    def _is_unauthorized(response: httpx.Response) -> bool:
        return response.status_code == 401
