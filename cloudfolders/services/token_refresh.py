"""
Token Refresh Service

Renews a tenant's stored OAuth tokens. The provider service only depends on
the ``TokenRefresher`` protocol; ``OAuthTokenRefresher`` is the bundled
implementation, backed by an ``IntegrationStore`` supplied by the host
application (persistence lives outside this package).
"""

import logging
from typing import Optional, Protocol

import httpx

from cloudfolders.errors import (
    NotFoundError,
    ReauthenticationRequiredError,
    UnsupportedProviderError,
)
from cloudfolders.providers.base import ProviderConfig, TokenInfo, refresh_access_token
from cloudfolders.providers.registry import ProviderRegistry, normalize_provider_id
from cloudfolders.services.integration import Integration

logger = logging.getLogger(__name__)


class TokenRefresher(Protocol):
    async def refresh_token(self, tenant_id: str, provider_id: str) -> Integration:
        """Return the tenant's integration with a renewed access token."""
        ...


class IntegrationStore(Protocol):
    async def get_integration(self, tenant_id: str, provider_id: str) -> Optional[Integration]:
        ...

    async def save_integration(self, integration: Integration) -> None:
        ...


class OAuthTokenRefresher:
    """Refresh tokens with the OAuth ``refresh_token`` grant."""

    def __init__(
        self,
        store: IntegrationStore,
        registry: ProviderRegistry,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.store = store
        self.registry = registry
        self._http_client = http_client

    async def refresh_token(self, tenant_id: str, provider_id: str) -> Integration:
        provider_id = normalize_provider_id(provider_id)
        registration = self.registry.resolve(provider_id)
        if registration is None:
            raise UnsupportedProviderError(provider_id)

        integration = await self.store.get_integration(tenant_id, provider_id)
        if integration is None:
            raise NotFoundError(f"Integration with provider {provider_id} not found")

        if not registration.config.refresh_tokens:
            raise ReauthenticationRequiredError(f"{registration.metadata.name} does not support token refresh")
        if not integration.refresh_token:
            raise ReauthenticationRequiredError("No refresh token available")

        try:
            token_info = await self._request_tokens(registration.config, integration.refresh_token)
        except httpx.HTTPError as e:
            logger.error(f"Failed to refresh token for tenant {tenant_id} ({provider_id}): {e}")
            raise ReauthenticationRequiredError("Failed to refresh access token") from e

        integration.apply_token(token_info)
        integration.tenant_id = tenant_id

        await self.store.save_integration(integration)
        logger.info(
            f"Successfully refreshed token for tenant {tenant_id} ({provider_id}), "
            f"expires at {integration.expires_at}"
        )
        return integration

    async def _request_tokens(self, config: ProviderConfig, refresh_token: str) -> TokenInfo:
        if self._http_client is not None:
            return await refresh_access_token(self._http_client, config, refresh_token)
        async with httpx.AsyncClient() as client:
            return await refresh_access_token(client, config, refresh_token)
