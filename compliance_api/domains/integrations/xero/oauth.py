# compliance_api/domains/integrations/xero/oauth.py
import asyncio
import logging
import secrets
from datetime import timedelta
from typing import Callable, Optional
from urllib.parse import urlencode

from compliance_api.core.session_store import OAUTH_STATE_KEY, SessionStore
from compliance_api.shared.exceptions import (
    AuthorizationError,
    BaseHTTPException,
    ConfigurationError,
    IntegrationTimeoutError,
    RedirectUriMismatchError,
)

from .client import AUTHORIZE_URL, XeroOAuthClient
from .credentials import CredentialStore
from .models import (
    AuthorizationStart,
    ErrorKind,
    FlowPhase,
    OAuthState,
    Tenant,
    TokenSet,
    error_kind_for,
    utc_now,
)
from .state import ConnectionEvent, ConnectionStateStore, EventType

logger = logging.getLogger(__name__)


def generate_nonce() -> str:
    return secrets.token_urlsafe(32)


def resolve_redirect_uri(
    explicit: Optional[str],
    origin: Optional[str],
    callback_path: str,
    fallback_base_url: str,
) -> str:
    """Pick the redirect URI: explicit config > runtime origin > fallback base URL."""
    if explicit:
        return explicit
    base = origin or fallback_base_url
    return f"{base.rstrip('/')}/{callback_path.lstrip('/')}"


class OAuthStateLedger:
    """
    Single-use OAuth state nonce for one session.

    ``acquire`` replaces any previous un-consumed state, so at most one flow is
    pending per session. ``consume`` deletes the state on success; a mismatched
    nonce leaves the pending flow in place. Expired states are deleted when
    observed.
    """

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        ttl_seconds: int = 600,
        nonce_factory: Callable[[], str] = generate_nonce,
    ):
        self.store = store
        self.session_id = session_id
        self.ttl = timedelta(seconds=ttl_seconds)
        self.nonce_factory = nonce_factory

    def acquire(self, redirect_uri: str) -> OAuthState:
        created_at = utc_now()
        oauth_state = OAuthState(
            nonce=self.nonce_factory(),
            created_at=created_at,
            expires_at=created_at + self.ttl,
            redirect_uri_used=redirect_uri,
        )
        self.store.set(self.session_id, OAUTH_STATE_KEY, oauth_state.model_dump_json())
        return oauth_state

    def peek(self) -> Optional[OAuthState]:
        """Return the pending state, or None if absent or expired."""
        oauth_state = self._load()
        if oauth_state is None:
            return None
        if oauth_state.is_expired():
            logger.info(f"OAuth state expired for session {self.session_id}")
            self.discard()
            return None
        return oauth_state

    def consume(self, returned_state: str) -> OAuthState:
        """
        Validate the returned state against the pending one and consume it.

        Raises:
            AuthorizationError: If no flow is pending, it expired, or the nonce
                does not match
        """
        oauth_state = self._load()
        if oauth_state is None:
            raise AuthorizationError("No Xero authorization is in progress")

        if oauth_state.is_expired():
            self.discard()
            raise AuthorizationError("OAuth session expired. Please reconnect.")

        if not secrets.compare_digest(oauth_state.nonce, returned_state):
            logger.warning(
                f"Rejected OAuth callback with mismatched state for session "
                f"{self.session_id}"
            )
            raise AuthorizationError("Invalid OAuth state")

        self.discard()
        return oauth_state

    def discard(self) -> None:
        self.store.delete(self.session_id, OAUTH_STATE_KEY)

    def _load(self) -> Optional[OAuthState]:
        raw = self.store.get(self.session_id, OAUTH_STATE_KEY)
        if raw is None:
            return None
        try:
            return OAuthState.model_validate_json(raw)
        except ValueError:
            self.discard()
            return None


class OAuthFlowController:
    """Drives the authorization request and callback exchange for one session."""

    def __init__(
        self,
        credential_store: CredentialStore,
        state_store: ConnectionStateStore,
        ledger: OAuthStateLedger,
        oauth_client: XeroOAuthClient,
        scopes: str,
        callback_path: str,
        fallback_base_url: str,
        exchange_timeout: float = 10.0,
    ):
        self.credential_store = credential_store
        self.state_store = state_store
        self.ledger = ledger
        self.oauth_client = oauth_client
        self.scopes = scopes
        self.callback_path = callback_path
        self.fallback_base_url = fallback_base_url
        self.exchange_timeout = exchange_timeout

    def begin_authorization(self, origin: Optional[str] = None) -> AuthorizationStart:
        """
        Start the OAuth flow and build the Xero authorization URL.

        Args:
            origin: Origin the browser is running on, used when no redirect URI
                is configured explicitly

        Returns:
            AuthorizationStart with the URL to navigate to

        Raises:
            ConfigurationError: If credentials are not configured
        """
        try:
            credentials = self.credential_store.get_credentials()
        except ConfigurationError:
            self.state_store.dispatch(
                ConnectionEvent(
                    type=EventType.CREDENTIALS_SET,
                    credentials_configured=False,
                )
            )
            raise

        redirect_uri = resolve_redirect_uri(
            credentials.redirect_uri,
            origin,
            self.callback_path,
            self.fallback_base_url,
        )

        self.state_store.dispatch(
            ConnectionEvent(type=EventType.AUTHORIZATION_REQUESTED)
        )
        oauth_state = self.ledger.acquire(redirect_uri)

        auth_params = {
            "response_type": "code",
            "client_id": credentials.client_id,
            "redirect_uri": redirect_uri,
            "scope": self.scopes,
            "state": oauth_state.nonce,
        }
        authorization_url = f"{AUTHORIZE_URL}?{urlencode(auth_params)}"

        self.state_store.dispatch(ConnectionEvent(type=EventType.AUTHORIZATION_PENDING))
        logger.info(f"Started Xero authorization, redirect URI {redirect_uri}")

        return AuthorizationStart(
            authorization_url=authorization_url,
            state=oauth_state.nonce,
            redirect_uri=redirect_uri,
            expires_at=oauth_state.expires_at,
        )

    async def complete_authorization(
        self,
        code: Optional[str],
        returned_state: Optional[str],
        redirect_uri: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> TokenSet:
        """
        Validate the callback and exchange the authorization code for tokens.

        A missing, expired or mismatched state is rejected as a CSRF attempt and
        leaves the connection state untouched. The code exchange is a single,
        time-bounded attempt; on failure the user has to start again.

        Raises:
            AuthorizationError: Invalid state, denied consent or rejected code
            RedirectUriMismatchError: Callback redirect URI differs from the
                one used to start the flow
            ConfigurationError: Credentials were removed mid-flow
            IntegrationTimeoutError / IntegrationNetworkError: Exchange failed
        """
        if not returned_state:
            raise AuthorizationError("Missing OAuth state")

        oauth_state = self.ledger.consume(returned_state)

        if error:
            self._fail(ErrorKind.AUTHORIZATION_ERROR)
            raise AuthorizationError(
                f"OAuth authorization failed: {error_description or error}"
            )

        if not code:
            self._fail(ErrorKind.AUTHORIZATION_ERROR)
            raise AuthorizationError("Missing authorization code")

        if redirect_uri is not None and redirect_uri != oauth_state.redirect_uri_used:
            self._fail(ErrorKind.REDIRECT_URI_MISMATCH)
            raise RedirectUriMismatchError(
                f"Callback received on {redirect_uri} but authorization was "
                f"requested for {oauth_state.redirect_uri_used}"
            )

        try:
            credentials = self.credential_store.get_credentials()
        except ConfigurationError:
            self._fail(ErrorKind.CONFIGURATION_ERROR)
            raise

        self.state_store.dispatch(ConnectionEvent(type=EventType.EXCHANGE_STARTED))

        try:
            token_response = await asyncio.wait_for(
                self.oauth_client.exchange_code(
                    credentials, code, oauth_state.redirect_uri_used
                ),
                timeout=self.exchange_timeout,
            )
        except asyncio.TimeoutError:
            self._fail(ErrorKind.TIMEOUT_ERROR)
            raise IntegrationTimeoutError("Token exchange timed out")
        except BaseHTTPException as e:
            self._fail(error_kind_for(e))
            raise

        token_set = TokenSet.from_token_response(token_response)
        tenants = await self._load_tenants(token_set)

        self.state_store.dispatch(
            ConnectionEvent(
                type=EventType.TOKEN_OBTAINED,
                token_set=token_set,
                tenants=tenants,
            )
        )
        logger.info(
            f"Xero connection established with {len(tenants or ())} tenant(s)"
        )
        return token_set

    def cancel_authorization(self) -> None:
        """Abandon a pending flow; a later callback with its nonce is rejected."""
        self.ledger.discard()
        if self.state_store.state.phase in (
            FlowPhase.AUTHORIZATION_REQUESTED,
            FlowPhase.PENDING_CALLBACK,
        ):
            self.state_store.dispatch(
                ConnectionEvent(type=EventType.AUTHORIZATION_CANCELLED)
            )

    async def disconnect(self) -> None:
        """Revoke tenant connections in Xero (best effort) and clear the session."""
        state = self.state_store.state
        token_set = state.token_set

        if token_set is not None and not token_set.is_expired():
            for tenant in state.tenants:
                if not tenant.connection_id:
                    continue
                try:
                    await self.oauth_client.delete_connection(
                        token_set.access_token, tenant.connection_id
                    )
                except BaseHTTPException as e:
                    # Local disconnection still succeeds
                    logger.warning(
                        f"Failed to revoke Xero connection for tenant {tenant.id}: "
                        f"{e.detail}"
                    )

        self.ledger.discard()
        self.state_store.dispatch(ConnectionEvent(type=EventType.DISCONNECTED))
        logger.info("Xero connection disconnected")

    async def _load_tenants(self, token_set: TokenSet) -> Optional[tuple[Tenant, ...]]:
        try:
            connections = await self.oauth_client.get_connections(
                token_set.access_token
            )
        except BaseHTTPException as e:
            logger.warning(f"Connected to Xero but tenant lookup failed: {e.detail}")
            return None
        return tuple(Tenant.from_connection(info) for info in connections)

    def _fail(self, kind: ErrorKind) -> None:
        self.state_store.dispatch(
            ConnectionEvent(type=EventType.AUTHORIZATION_FAILED, error=kind)
        )
