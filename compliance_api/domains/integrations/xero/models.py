# compliance_api/domains/integrations/xero/models.py
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ErrorKind(str, Enum):
    """Stable error codes recorded in connection status and results."""

    CONFIGURATION_ERROR = "configuration_error"
    REDIRECT_URI_MISMATCH = "redirect_uri_mismatch"
    AUTHORIZATION_ERROR = "authorization_error"
    TOKEN_REFRESH_ERROR = "token_refresh_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT_ERROR = "timeout_error"
    UPSTREAM_ERROR = "upstream_error"
    TENANT_NOT_SELECTED = "tenant_not_selected"


class FlowPhase(str, Enum):
    """Phases of the OAuth connection lifecycle."""

    IDLE = "idle"
    AUTHORIZATION_REQUESTED = "authorization_requested"
    PENDING_CALLBACK = "pending_callback"
    EXCHANGING = "exchanging"
    CONNECTED = "connected"
    TOKEN_EXPIRING = "token_expiring"
    REFRESHING = "refreshing"
    DISCONNECTED = "disconnected"


class SourceTier(str, Enum):
    """Data source that produced a resource result, most authoritative first."""

    LIVE = "live"
    SECONDARY = "secondary"
    STATIC = "static"


class ResourceType(str, Enum):
    """Financial resources available through the data endpoint."""

    INVOICES = "invoices"
    CREDIT_NOTES = "credit-notes"
    BANK_TRANSACTIONS = "bank-transactions"
    PAYMENTS = "payments"


class Credentials(BaseModel):
    """Xero app credentials configured by an administrator."""

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(..., description="Xero app client ID")
    client_secret: str = Field(..., description="Xero app client secret")
    redirect_uri: Optional[str] = Field(
        None, description="Explicit OAuth redirect URI"
    )


class CredentialsPreview(BaseModel):
    """Masked view of the credentials, safe for non-admin callers."""

    configured: bool = Field(..., description="Whether credentials are set")
    client_id_preview: Optional[str] = Field(
        None, description="First characters of the client ID"
    )
    has_client_secret: bool = Field(False, description="Whether a secret is set")
    redirect_uri: Optional[str] = Field(None, description="Configured redirect URI")


class TokenSet(BaseModel):
    """Access/refresh token pair. Replaced as a whole, never mutated."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., description="Bearer token for API calls")
    refresh_token: Optional[str] = Field(None, description="Token used to refresh")
    expires_at: datetime = Field(..., description="When the access token expires")
    token_type: str = Field(default="Bearer", description="Token type")
    scope: Optional[str] = Field(None, description="Granted scopes")

    def is_expired(
        self, now: Optional[datetime] = None, leeway_seconds: int = 0
    ) -> bool:
        now = now or utc_now()
        return now + timedelta(seconds=leeway_seconds) >= self.expires_at

    @classmethod
    def from_token_response(
        cls, response: "XeroTokenResponse", issued_at: Optional[datetime] = None
    ) -> "TokenSet":
        issued_at = issued_at or utc_now()
        return cls(
            access_token=response.access_token,
            refresh_token=response.refresh_token,
            expires_at=issued_at + timedelta(seconds=response.expires_in),
            token_type=response.token_type,
            scope=response.scope,
        )


class OAuthState(BaseModel):
    """Single-use nonce binding an authorization request to its callback."""

    model_config = ConfigDict(frozen=True)

    nonce: str = Field(..., description="Random state value")
    created_at: datetime = Field(..., description="When the flow started")
    expires_at: datetime = Field(..., description="When the nonce stops being valid")
    redirect_uri_used: str = Field(..., description="Redirect URI sent to Xero")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at


class Tenant(BaseModel):
    """Snapshot of a Xero organisation the session can access."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Xero tenant ID")
    display_name: str = Field(..., description="Organisation name")
    tenant_type: Optional[str] = Field(None, description="ORGANISATION or PRACTICE")
    connection_id: Optional[str] = Field(
        None, description="Xero connection ID, used to revoke access"
    )

    @classmethod
    def from_connection(cls, info: "XeroTenantInfo") -> "Tenant":
        return cls(
            id=info.tenantId,
            display_name=info.tenantName or info.tenantId,
            tenant_type=info.tenantType,
            connection_id=info.id,
        )


class ConnectionStatus(BaseModel):
    """Derived view of a session's connection state."""

    connected: bool = Field(..., description="Whether the session is connected")
    token_valid: bool = Field(..., description="Whether the access token is unexpired")
    tenants: List[Tenant] = Field(default_factory=list, description="Organisations")
    selected_tenant_id: Optional[str] = Field(None, description="Active tenant")
    last_error: Optional[ErrorKind] = Field(None, description="Last error kind")
    phase: FlowPhase = Field(FlowPhase.IDLE, description="Lifecycle phase")
    credentials_configured: bool = Field(
        False, description="Whether app credentials exist"
    )
    expires_at: Optional[datetime] = Field(None, description="Access token expiry")


# Xero wire models


class XeroTokenResponse(BaseModel):
    """Response from Xero token endpoint."""

    access_token: str = Field(..., description="Access token for API calls")
    refresh_token: Optional[str] = Field(None, description="Refresh token")
    expires_in: int = Field(..., description="Token lifetime in seconds")
    token_type: str = Field(default="Bearer", description="Token type")
    scope: Optional[str] = Field(None, description="Granted scopes")


class XeroTenantInfo(BaseModel):
    """Information about a Xero tenant from connections endpoint."""

    id: str = Field(..., description="Xero connection UUID")
    tenantId: str = Field(..., description="Xero tenant ID")
    tenantName: Optional[str] = Field(None, description="Organization name in Xero")
    tenantType: Optional[str] = Field(None, description="ORGANISATION, PRACTICE")
    createdDateUtc: Optional[datetime] = Field(None, description="Created at")
    updatedDateUtc: Optional[datetime] = Field(None, description="Updated at")


# Request / response bodies


class CallbackParams(BaseModel):
    """Query parameters received on the OAuth redirect, forwarded by the UI."""

    code: Optional[str] = Field(None, description="OAuth authorization code")
    state: Optional[str] = Field(None, description="State nonce")
    redirect_uri: Optional[str] = Field(
        None, description="Redirect URI the callback was received on"
    )
    error: Optional[str] = Field(None, description="Error code if authorization failed")
    error_description: Optional[str] = Field(None, description="Error description")


class AuthorizationStart(BaseModel):
    """Response model for OAuth authorization URL generation."""

    authorization_url: str = Field(..., description="Xero OAuth authorization URL")
    state: str = Field(..., description="State nonce embedded in the URL")
    redirect_uri: str = Field(..., description="Redirect URI used for this flow")
    expires_at: datetime = Field(..., description="When the state nonce expires")


class TenantSelection(BaseModel):
    tenant_id: str = Field(..., description="Xero tenant ID to activate")


class CredentialsUpdate(BaseModel):
    client_id: str = Field(..., description="Xero app client ID")
    client_secret: str = Field(..., description="Xero app client secret")
    redirect_uri: Optional[str] = Field(None, description="Explicit redirect URI")


# Normalized financial data


class ResourceRecord(BaseModel):
    """One financial document in the shape shared by every data tier."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Provider identifier")
    reference: Optional[str] = Field(None, description="Number or reference")
    document_date: Optional[date] = Field(None, description="Document date")
    contact_name: Optional[str] = Field(None, description="Customer or supplier")
    status: Optional[str] = Field(None, description="Provider status")
    direction: Literal["in", "out"] = Field(
        "in", description="Money received (in) or spent (out)"
    )
    subtotal: Decimal = Field(Decimal("0"), description="Amount excluding tax")
    tax: Decimal = Field(Decimal("0"), description="Tax amount")
    total: Decimal = Field(Decimal("0"), description="Amount including tax")
    amount_paid: Decimal = Field(Decimal("0"), description="Amount settled")


class ResourcePayload(BaseModel):
    resource_type: ResourceType = Field(..., description="Requested resource")
    tenant_id: str = Field(..., description="Tenant the data belongs to")
    records: List[ResourceRecord] = Field(default_factory=list)


class ResourceResult(BaseModel):
    """Result of a tiered fetch. Always well formed."""

    data: ResourcePayload = Field(..., description="Normalized data")
    source_tier: SourceTier = Field(..., description="Tier that produced the data")
    degraded_reason: Optional[ErrorKind] = Field(
        None, description="Why the live tier was not used"
    )


def error_kind_for(exc: BaseException) -> ErrorKind:
    """Map an integration exception to its ErrorKind."""
    code = getattr(exc, "error_code", None)
    try:
        return ErrorKind(code)
    except ValueError:
        return ErrorKind.UPSTREAM_ERROR
