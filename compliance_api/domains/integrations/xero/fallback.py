# compliance_api/domains/integrations/xero/fallback.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from compliance_api.core.settings import Settings
from compliance_api.shared.exceptions import (
    ConfigurationError,
    IntegrationNetworkError,
    IntegrationTimeoutError,
    ProviderRequestError,
)

from .client import ACCOUNTING_API_URL, HttpClientFactory
from .models import (
    ErrorKind,
    ResourcePayload,
    ResourceResult,
    ResourceType,
    SourceTier,
    error_kind_for,
)
from .normalization import RESOURCE_ENDPOINTS, normalize_payload
from .static_data import static_payload
from .token_guard import TokenRefreshGuard

logger = logging.getLogger(__name__)

TierFetcher = Callable[[ResourceType, str], Awaitable[ResourcePayload]]


@dataclass(frozen=True)
class TierPolicy:
    """Per-tier time budgets in seconds."""

    live_timeout: float = 8.0
    secondary_timeout: float = 5.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "TierPolicy":
        return cls(
            live_timeout=settings.XERO_LIVE_TIER_TIMEOUT,
            secondary_timeout=settings.XERO_SECONDARY_TIER_TIMEOUT,
        )


class LiveXeroFetcher:
    """Reads resources from the Xero Accounting API through the token guard."""

    def __init__(self, guard: TokenRefreshGuard):
        self.guard = guard

    async def __call__(self, resource_type: ResourceType, tenant_id: str) -> ResourcePayload:
        url = f"{ACCOUNTING_API_URL}/{RESOURCE_ENDPOINTS[resource_type]}"
        response = await self.guard.call_with_auth("GET", url, tenant_id=tenant_id)

        if response.status_code >= 400:
            raise ProviderRequestError(
                f"Xero API error {response.status_code} for {resource_type.value}"
            )
        try:
            return normalize_payload(resource_type, tenant_id, response.json())
        except ValueError as e:
            raise ProviderRequestError(f"Unexpected Xero response: {e}")


class DemoDataFetcher:
    """
    Reads Xero-shaped sample data from the demo data service.

    The service answers ``GET {base_url}/{resource}`` with
    ``{"success": true, "data": [...]}``.
    """

    def __init__(
        self,
        base_url: Optional[str],
        http_client_factory: HttpClientFactory = httpx.AsyncClient,
    ):
        self.base_url = base_url
        self.http_client_factory = http_client_factory

    async def __call__(self, resource_type: ResourceType, tenant_id: str) -> ResourcePayload:
        if not self.base_url:
            raise ConfigurationError("Demo data service is not configured")

        url = f"{self.base_url.rstrip('/')}/{resource_type.value}"
        try:
            async with self.http_client_factory() as client:
                response = await client.get(url, params={"tenantId": tenant_id})
        except httpx.TimeoutException as e:
            raise IntegrationTimeoutError(f"Demo data request timed out: {e}")
        except httpx.RequestError as e:
            raise IntegrationNetworkError(f"Demo data request failed: {e}")

        if response.status_code >= 400:
            raise ProviderRequestError(
                f"Demo data service error {response.status_code}"
            )

        body = response.json()
        if isinstance(body, dict) and body.get("success") is False:
            raise ProviderRequestError(
                f"Demo data service reported failure: {body.get('message')}"
            )
        return normalize_payload(resource_type, tenant_id, body)


class FallbackDataProvider:
    """
    Fetches financial resources from the best available tier.

    Tiers are tried in order: live Xero API, demo data service, bundled
    static data. Each tier runs under its own time budget; any failure moves
    on to the next tier. The static tier cannot fail, so ``fetch_resource``
    always returns a result.
    """

    def __init__(
        self,
        live: Optional[TierFetcher],
        secondary: Optional[TierFetcher] = None,
        policy: Optional[TierPolicy] = None,
    ):
        self.live = live
        self.secondary = secondary
        self.policy = policy or TierPolicy()

    async def fetch_resource(
        self, resource_type: ResourceType, tenant_id: str
    ) -> ResourceResult:
        degraded_reason: Optional[ErrorKind] = None

        if self.live is not None:
            try:
                payload = await asyncio.wait_for(
                    self.live(resource_type, tenant_id),
                    timeout=self.policy.live_timeout,
                )
                return ResourceResult(data=payload, source_tier=SourceTier.LIVE)
            except asyncio.TimeoutError:
                degraded_reason = ErrorKind.TIMEOUT_ERROR
                logger.warning(
                    f"Live Xero fetch of {resource_type.value} exceeded "
                    f"{self.policy.live_timeout}s, falling back"
                )
            except Exception as e:
                degraded_reason = error_kind_for(e)
                logger.warning(
                    f"Live Xero fetch of {resource_type.value} failed "
                    f"({degraded_reason.value}): {e}"
                )

        if self.secondary is not None:
            try:
                payload = await asyncio.wait_for(
                    self.secondary(resource_type, tenant_id),
                    timeout=self.policy.secondary_timeout,
                )
                return ResourceResult(
                    data=payload,
                    source_tier=SourceTier.SECONDARY,
                    degraded_reason=degraded_reason,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Demo data fetch of {resource_type.value} exceeded "
                    f"{self.policy.secondary_timeout}s, using static data"
                )
            except Exception as e:
                logger.warning(
                    f"Demo data fetch of {resource_type.value} failed, "
                    f"using static data: {e}"
                )

        logger.info(f"Serving static {resource_type.value} for tenant {tenant_id}")
        return ResourceResult(
            data=static_payload(resource_type, tenant_id),
            source_tier=SourceTier.STATIC,
            degraded_reason=degraded_reason,
        )
