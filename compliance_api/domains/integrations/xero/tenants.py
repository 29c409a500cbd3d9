# compliance_api/domains/integrations/xero/tenants.py
import logging
from typing import List, Optional

from compliance_api.shared.exceptions import BaseHTTPException, TenantNotSelectedError

from .client import CONNECTIONS_URL
from .models import ErrorKind, Tenant, XeroTenantInfo, error_kind_for
from .state import ConnectionEvent, ConnectionStateStore, EventType
from .token_guard import TokenRefreshGuard

logger = logging.getLogger(__name__)


class TenantResolver:
    """Selects the active Xero organisation for a session."""

    def __init__(self, state_store: ConnectionStateStore, guard: TokenRefreshGuard):
        self.state_store = state_store
        self.guard = guard

    def list_tenants(self) -> List[Tenant]:
        self.auto_select()
        return list(self.state_store.state.tenants)

    def selected_tenant(self) -> Optional[Tenant]:
        state = self.state_store.state
        for tenant in state.tenants:
            if tenant.id == state.selected_tenant_id:
                return tenant
        return None

    def select_tenant(self, tenant_id: str) -> Tenant:
        """
        Make a tenant the active one.

        Raises:
            TenantNotSelectedError: If the tenant is not in the current set
        """
        state = self.state_store.state
        if not state.has_tenant(tenant_id):
            raise TenantNotSelectedError(
                f"Organisation {tenant_id} is not available for this connection"
            )

        self.state_store.dispatch(
            ConnectionEvent(type=EventType.TENANT_SELECTED, tenant_id=tenant_id)
        )
        logger.info(f"Selected Xero tenant {tenant_id}")
        return next(t for t in state.tenants if t.id == tenant_id)

    def auto_select(self) -> Optional[Tenant]:
        """Select the only tenant when exactly one exists and none is selected."""
        state = self.state_store.state
        if state.selected_tenant_id is None and len(state.tenants) == 1:
            return self.select_tenant(state.tenants[0].id)
        return self.selected_tenant()

    def resolve(self, tenant_id: Optional[str] = None) -> Tenant:
        """
        Tenant to scope a data request to.

        An explicit tenant must belong to the current set; otherwise the
        selected tenant is used.

        Raises:
            TenantNotSelectedError: If no valid tenant can be determined
        """
        if tenant_id is not None:
            for tenant in self.state_store.state.tenants:
                if tenant.id == tenant_id:
                    return tenant
            raise TenantNotSelectedError(
                f"Organisation {tenant_id} is not available for this connection"
            )

        selected = self.auto_select()
        if selected is None:
            raise TenantNotSelectedError(
                "Select a Xero organisation before loading data"
            )
        return selected

    async def refresh_tenants(self) -> List[Tenant]:
        """
        Re-read the tenant set from Xero and publish it.

        Failures keep the previous set and are recorded as the last error.
        """
        if self.state_store.token_set is None:
            return list(self.state_store.state.tenants)

        try:
            response = await self.guard.call_with_auth("GET", CONNECTIONS_URL)
        except BaseHTTPException as e:
            logger.warning(f"Tenant refresh failed: {e.detail}")
            return self._keep_tenants(error_kind_for(e))

        if response.status_code >= 400:
            logger.warning(f"Tenant refresh returned HTTP {response.status_code}")
            return self._keep_tenants(ErrorKind.UPSTREAM_ERROR)

        try:
            tenants = tuple(
                Tenant.from_connection(XeroTenantInfo.model_validate(item))
                for item in response.json()
            )
        except (ValueError, TypeError) as e:
            logger.warning(f"Unexpected connections response: {e}")
            return self._keep_tenants(ErrorKind.UPSTREAM_ERROR)

        self.state_store.dispatch(
            ConnectionEvent(type=EventType.STATUS_REFRESHED, tenants=tenants)
        )
        self.auto_select()
        return list(self.state_store.state.tenants)

    def _keep_tenants(self, kind: ErrorKind) -> List[Tenant]:
        self.state_store.dispatch(
            ConnectionEvent(type=EventType.STATUS_REFRESHED, error=kind)
        )
        return list(self.state_store.state.tenants)
