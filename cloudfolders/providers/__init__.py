"""
Cloud Storage Providers Package

Unified folder operations over several cloud storage backends.

Supported Providers:
- Dropbox (OAuth 2.0)
- Google Drive (OAuth 2.0)
- Box (OAuth 2.0)
- OneDrive (OAuth 2.0 via Microsoft Graph)
"""

from cloudfolders.providers.base import (
    BaseCloudProvider,
    CloudFolder,
    ListFoldersOptions,
    ListFoldersResponse,
    ProviderCapabilities,
    ProviderConfig,
    ProviderMetadata,
    QuotaLimits,
    TokenInfo,
)
from cloudfolders.providers.registry import ProviderRegistration, ProviderRegistry

__all__ = [
    "BaseCloudProvider",
    "CloudFolder",
    "ListFoldersOptions",
    "ListFoldersResponse",
    "ProviderCapabilities",
    "ProviderConfig",
    "ProviderMetadata",
    "QuotaLimits",
    "TokenInfo",
    "ProviderRegistration",
    "ProviderRegistry",
]
