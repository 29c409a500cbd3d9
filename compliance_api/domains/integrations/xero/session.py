# compliance_api/domains/integrations/xero/session.py
import logging
from collections import OrderedDict
from typing import List, Optional

import httpx

from compliance_api.core.session_store import SessionStore
from compliance_api.core.settings import Settings

from .client import HttpClientFactory, XeroOAuthClient
from .credentials import CredentialStore
from .fallback import DemoDataFetcher, FallbackDataProvider, LiveXeroFetcher, TierPolicy
from .models import (
    ConnectionStatus,
    Credentials,
    ResourceResult,
    ResourceType,
    TokenSet,
)
from .oauth import OAuthFlowController, OAuthStateLedger
from .state import (
    ConnectionEvent,
    ConnectionStateStore,
    EventType,
    Listener,
    SessionPersistence,
    SessionState,
)
from .summary import FinancialSummary, build_financial_summary
from .tenants import TenantResolver
from .token_guard import RetryPolicy, TokenRefreshGuard

logger = logging.getLogger(__name__)


class XeroSession:
    """All Xero collaborators for one user session, wired together."""

    def __init__(
        self,
        session_id: str,
        settings: Settings,
        credential_store: CredentialStore,
        session_store: SessionStore,
        http_client_factory: HttpClientFactory = httpx.AsyncClient,
    ):
        self.session_id = session_id
        self.credential_store = credential_store

        self.state_store = ConnectionStateStore()
        persistence = SessionPersistence(session_store, session_id)
        restore = persistence.restore_event()
        self.state_store.dispatch(
            ConnectionEvent(
                type=EventType.CREDENTIALS_SET,
                credentials_configured=credential_store.is_configured(),
            )
        )
        if restore is not None:
            self.state_store.dispatch(restore)
            logger.info(f"Restored Xero session {session_id}")
        self.state_store.subscribe(persistence)

        self.ledger = OAuthStateLedger(
            session_store,
            session_id,
            ttl_seconds=settings.XERO_OAUTH_STATE_TTL_SECONDS,
        )
        self.oauth_client = XeroOAuthClient(
            http_client_factory=http_client_factory,
            timeout=settings.XERO_REQUEST_TIMEOUT,
        )
        self.guard = TokenRefreshGuard(
            self.state_store,
            credential_store,
            self.oauth_client,
            http_client_factory=http_client_factory,
            policy=RetryPolicy.from_settings(settings),
        )
        self.resolver = TenantResolver(self.state_store, self.guard)
        self.controller = OAuthFlowController(
            credential_store,
            self.state_store,
            self.ledger,
            self.oauth_client,
            scopes=settings.XERO_SCOPES,
            callback_path=settings.XERO_CALLBACK_PATH,
            fallback_base_url=settings.APP_BASE_URL,
            exchange_timeout=settings.XERO_TOKEN_EXCHANGE_TIMEOUT,
        )
        self.provider = FallbackDataProvider(
            live=LiveXeroFetcher(self.guard),
            secondary=DemoDataFetcher(settings.XERO_DEMO_DATA_URL, http_client_factory),
            policy=TierPolicy.from_settings(settings),
        )

    def status(self) -> ConnectionStatus:
        return self.state_store.status()

    async def refresh_status(self) -> ConnectionStatus:
        """Re-read tenants from Xero when a token exists, then report status."""
        await self.resolver.refresh_tenants()
        return self.status()

    async def complete_authorization(
        self,
        code: Optional[str],
        state: Optional[str],
        redirect_uri: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> TokenSet:
        token_set = await self.controller.complete_authorization(
            code, state, redirect_uri, error, error_description
        )
        self.resolver.auto_select()
        return token_set

    async def fetch_resource(
        self, resource_type: ResourceType, tenant_id: Optional[str] = None
    ) -> ResourceResult:
        """
        Fetch a resource for the given or selected tenant.

        Raises:
            TenantNotSelectedError: If no tenant can be resolved. Everything
                after tenant resolution degrades instead of raising.
        """
        tenant = self.resolver.resolve(tenant_id)
        return await self.provider.fetch_resource(resource_type, tenant.id)

    async def financial_summary(
        self, tenant_id: Optional[str] = None
    ) -> FinancialSummary:
        invoices = await self.fetch_resource(ResourceType.INVOICES, tenant_id)
        return build_financial_summary(invoices)


class XeroSessionRegistry:
    """
    Creates and looks up per-session Xero state.

    One registry lives on ``app.state`` and owns the collaborators shared by
    all sessions. Sessions are dropped on disconnect and the least recently
    used ones are evicted past ``XERO_SESSION_CACHE_SIZE``; everything a
    session needs to resume is kept in the session store.
    """

    def __init__(
        self,
        settings: Settings,
        credential_store: CredentialStore,
        session_store: SessionStore,
        http_client_factory: HttpClientFactory = httpx.AsyncClient,
    ):
        self.settings = settings
        self.credential_store = credential_store
        self.session_store = session_store
        self.http_client_factory = http_client_factory
        self._sessions: "OrderedDict[str, XeroSession]" = OrderedDict()

    def get(self, session_id: str) -> XeroSession:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
            return session

        session = XeroSession(
            session_id,
            self.settings,
            self.credential_store,
            self.session_store,
            self.http_client_factory,
        )
        session.state_store.subscribe(self._drop_on_disconnect(session))
        self._sessions[session_id] = session
        while len(self._sessions) > self.settings.XERO_SESSION_CACHE_SIZE:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.debug(f"Evicted Xero session {evicted_id}")
        return session

    def discard(self, session: XeroSession) -> None:
        """Forget a session if it is still the registered one for its id."""
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]

    def _drop_on_disconnect(self, session: XeroSession) -> Listener:
        def listener(state: SessionState, event: ConnectionEvent) -> None:
            if event.type is EventType.DISCONNECTED:
                self.discard(session)

        return listener

    def sessions(self) -> List[XeroSession]:
        return list(self._sessions.values())

    def set_credentials(self, credentials: Credentials) -> None:
        """Replace the app credentials and tell every live session."""
        self.credential_store.set_credentials(credentials)
        for session in list(self._sessions.values()):
            session.state_store.dispatch(
                ConnectionEvent(
                    type=EventType.CREDENTIALS_SET,
                    credentials_configured=True,
                )
            )
