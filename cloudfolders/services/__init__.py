"""Cloud folder services."""

from cloudfolders.services.cloud_provider_service import CloudProviderService
from cloudfolders.services.integration import Integration
from cloudfolders.services.token_refresh import (
    IntegrationStore,
    OAuthTokenRefresher,
    TokenRefresher,
)

__all__ = [
    "CloudProviderService",
    "Integration",
    "IntegrationStore",
    "OAuthTokenRefresher",
    "TokenRefresher",
]
