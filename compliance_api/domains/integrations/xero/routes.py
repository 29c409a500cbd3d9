# compliance_api/domains/integrations/xero/routes.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status

from compliance_api.domains.auth.dependencies import get_jwt_payload, require_admin
from compliance_api.domains.auth.types import JwtPayload
from compliance_api.shared.responses import ApiResponse

from .dependencies import get_registry, get_xero_session
from .models import (
    AuthorizationStart,
    CallbackParams,
    ConnectionStatus,
    Credentials,
    CredentialsPreview,
    CredentialsUpdate,
    ResourceResult,
    ResourceType,
    Tenant,
    TenantSelection,
)
from .session import XeroSession, XeroSessionRegistry
from .summary import FinancialSummary

# Router for Xero connection lifecycle endpoints
router = APIRouter(prefix="/xero", tags=["Xero"])


@router.get(
    "/connection/status",
    response_model=ApiResponse[ConnectionStatus],
    operation_id="getXeroConnectionStatus",
)
async def get_connection_status(
    session: XeroSession = Depends(get_xero_session),
) -> ApiResponse[ConnectionStatus]:
    """
    Report the connection status for the caller's session.

    When a token exists the tenant list is re-read from Xero first; a failed
    re-check keeps the previous tenants and records `last_error`.
    """
    connection_status = await session.refresh_status()
    return ApiResponse(data=connection_status)


@router.get(
    "/settings",
    response_model=ApiResponse[CredentialsPreview],
    operation_id="getXeroSettings",
)
async def get_settings(
    payload: JwtPayload = Depends(get_jwt_payload),
    registry: XeroSessionRegistry = Depends(get_registry),
) -> ApiResponse[CredentialsPreview]:
    """Masked credential preview. The client secret is never returned."""
    return ApiResponse(data=registry.credential_store.preview())


@router.put(
    "/settings",
    response_model=ApiResponse[CredentialsPreview],
    operation_id="updateXeroSettings",
)
async def update_settings(
    update: CredentialsUpdate,
    admin: JwtPayload = Depends(require_admin),
    registry: XeroSessionRegistry = Depends(get_registry),
) -> ApiResponse[CredentialsPreview]:
    """
    Replace the Xero app credentials.

    **Permission Required**: admin or super_admin role

    Raises:
        HTTP 403: If the caller is not an administrator
        HTTP 500: If client ID or secret is empty (configuration_error)
    """
    registry.set_credentials(
        Credentials(
            client_id=update.client_id,
            client_secret=update.client_secret,
            redirect_uri=update.redirect_uri,
        )
    )
    return ApiResponse(
        data=registry.credential_store.preview(),
        message="Xero settings saved",
    )


@router.post(
    "/connect",
    response_model=ApiResponse[AuthorizationStart],
    status_code=status.HTTP_200_OK,
    operation_id="startXeroConnection",
)
async def start_connection(
    origin: Optional[str] = Header(None),
    session: XeroSession = Depends(get_xero_session),
) -> ApiResponse[AuthorizationStart]:
    """
    Start the Xero OAuth flow.

    Returns the authorization URL the browser should navigate to. Any
    previously pending flow for this session is replaced.

    Raises:
        HTTP 500: If credentials are not configured
    """
    start = session.controller.begin_authorization(origin=origin)
    return ApiResponse(data=start)


@router.post(
    "/callback",
    response_model=ApiResponse[ConnectionStatus],
    operation_id="completeXeroConnection",
)
async def complete_connection(
    params: CallbackParams,
    session: XeroSession = Depends(get_xero_session),
) -> ApiResponse[ConnectionStatus]:
    """
    Complete the OAuth flow with the parameters Xero redirected back with.

    The frontend callback page forwards `code`, `state` and, when known, the
    redirect URI it was loaded on.

    Raises:
        HTTP 401: Invalid state, denied consent or rejected code
        HTTP 500: Redirect URI mismatch or missing credentials
        HTTP 502/504: Token endpoint unreachable or too slow
    """
    await session.complete_authorization(
        params.code,
        params.state,
        redirect_uri=params.redirect_uri,
        error=params.error,
        error_description=params.error_description,
    )
    return ApiResponse(data=session.status(), message="Connected to Xero")


@router.post(
    "/cancel",
    response_model=ApiResponse[ConnectionStatus],
    operation_id="cancelXeroConnection",
)
async def cancel_connection(
    session: XeroSession = Depends(get_xero_session),
) -> ApiResponse[ConnectionStatus]:
    """Abandon a pending authorization; its state nonce becomes invalid."""
    session.controller.cancel_authorization()
    return ApiResponse(data=session.status())


@router.post(
    "/disconnect",
    response_model=ApiResponse[ConnectionStatus],
    operation_id="disconnectXero",
)
async def disconnect(
    session: XeroSession = Depends(get_xero_session),
) -> ApiResponse[ConnectionStatus]:
    """Revoke the Xero connection (best effort) and clear the session."""
    await session.controller.disconnect()
    return ApiResponse(data=session.status(), message="Disconnected from Xero")


@router.post(
    "/token/refresh",
    response_model=ApiResponse[ConnectionStatus],
    operation_id="refreshXeroToken",
)
async def refresh_token(
    session: XeroSession = Depends(get_xero_session),
) -> ApiResponse[ConnectionStatus]:
    """
    Force a token refresh.

    Raises:
        HTTP 401: No token, or Xero rejected the refresh token
    """
    await session.guard.refresh_now()
    return ApiResponse(data=session.status(), message="Token refreshed")


@router.get(
    "/tenants",
    response_model=ApiResponse[List[Tenant]],
    operation_id="listXeroTenants",
)
async def list_tenants(
    session: XeroSession = Depends(get_xero_session),
) -> ApiResponse[List[Tenant]]:
    return ApiResponse(data=session.resolver.list_tenants())


@router.post(
    "/tenants/select",
    response_model=ApiResponse[Tenant],
    operation_id="selectXeroTenant",
)
async def select_tenant(
    selection: TenantSelection,
    session: XeroSession = Depends(get_xero_session),
) -> ApiResponse[Tenant]:
    """
    Make an organisation the active tenant for this session.

    Raises:
        HTTP 400: If the tenant is not part of the current connection
    """
    tenant = session.resolver.select_tenant(selection.tenant_id)
    return ApiResponse(data=tenant)


@router.get(
    "/data",
    response_model=ApiResponse[ResourceResult],
    operation_id="getXeroData",
)
async def get_data(
    resource_type: ResourceType = Query(..., alias="type"),
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
    session: XeroSession = Depends(get_xero_session),
) -> ApiResponse[ResourceResult]:
    """
    Load a financial resource for the active (or given) tenant.

    Data comes from the live Xero API when possible, otherwise from the demo
    data service or the bundled dataset; `source_tier` says which.

    Raises:
        HTTP 400: If no tenant is selected (tenant_not_selected)
    """
    result = await session.fetch_resource(resource_type, tenant_id)
    return ApiResponse(data=result)


@router.get(
    "/summary",
    response_model=ApiResponse[FinancialSummary],
    operation_id="getXeroSummary",
)
async def get_summary(
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
    session: XeroSession = Depends(get_xero_session),
) -> ApiResponse[FinancialSummary]:
    summary = await session.financial_summary(tenant_id)
    return ApiResponse(data=summary)
