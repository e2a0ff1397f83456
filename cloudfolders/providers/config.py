"""
Provider Registration Table

The static list of providers this process can talk to. OAuth client
credentials, enable flags and per-minute budgets come from
``CloudStorageSettings``; everything else is fixed here.
"""

import logging
from typing import Optional, Type

from cloudfolders.core.config import CloudStorageSettings, get_settings
from cloudfolders.providers.base import (
    BaseCloudProvider,
    ProviderConfig,
    ProviderMetadata,
    QuotaLimits,
)
from cloudfolders.providers.box import (
    BOX_API_BASE,
    BOX_OAUTH_AUTHORIZE_URL,
    BOX_OAUTH_TOKEN_URL,
    BOX_SCOPES,
    BoxProvider,
)
from cloudfolders.providers.dropbox_provider import (
    DROPBOX_API_BASE,
    DROPBOX_OAUTH_AUTHORIZE_URL,
    DROPBOX_OAUTH_TOKEN_URL,
    DROPBOX_SCOPES,
    DropboxProvider,
)
from cloudfolders.providers.google_drive import (
    GOOGLE_DRIVE_API_BASE,
    GOOGLE_DRIVE_SCOPES,
    GOOGLE_OAUTH_AUTHORIZE_URL,
    GOOGLE_OAUTH_TOKEN_URL,
    GoogleDriveProvider,
)
from cloudfolders.providers.onedrive import (
    GRAPH_BASE_URL,
    MICROSOFT_OAUTH_AUTHORIZE_URL,
    MICROSOFT_OAUTH_TOKEN_URL,
    ONEDRIVE_SCOPES,
    OneDriveProvider,
)
from cloudfolders.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

Registration = tuple[ProviderMetadata, ProviderConfig, Type[BaseCloudProvider]]


def _quota(requests_per_minute: Optional[int]) -> Optional[QuotaLimits]:
    return QuotaLimits(requests_per_minute=requests_per_minute) if requests_per_minute else None


def provider_registrations(settings: CloudStorageSettings) -> list[Registration]:
    """Build the ordered registration table from settings."""
    return [
        (
            ProviderMetadata(
                id=DropboxProvider.provider_id,
                name="Dropbox",
                description="Dropbox cloud storage integration",
                icon="dropbox-icon",
                capabilities=DropboxProvider.default_capabilities,
                enabled=settings.dropbox_enabled,
            ),
            ProviderConfig(
                client_id=settings.dropbox_client_id,
                client_secret=settings.dropbox_client_secret,
                scopes=DROPBOX_SCOPES,
                auth_endpoint=DROPBOX_OAUTH_AUTHORIZE_URL,
                token_endpoint=DROPBOX_OAUTH_TOKEN_URL,
                api_endpoint=DROPBOX_API_BASE,
                quota_limits=_quota(settings.dropbox_requests_per_minute),
            ),
            DropboxProvider,
        ),
        (
            ProviderMetadata(
                id=GoogleDriveProvider.provider_id,
                name="Google Drive",
                description="Google Drive cloud storage integration",
                icon="gdrive-icon",
                capabilities=GoogleDriveProvider.default_capabilities,
                enabled=settings.google_drive_enabled,
            ),
            ProviderConfig(
                client_id=settings.google_drive_client_id,
                client_secret=settings.google_drive_client_secret,
                scopes=GOOGLE_DRIVE_SCOPES,
                auth_endpoint=GOOGLE_OAUTH_AUTHORIZE_URL,
                token_endpoint=GOOGLE_OAUTH_TOKEN_URL,
                api_endpoint=GOOGLE_DRIVE_API_BASE,
                quota_limits=_quota(settings.google_drive_requests_per_minute),
            ),
            GoogleDriveProvider,
        ),
        (
            ProviderMetadata(
                id=BoxProvider.provider_id,
                name="Box",
                description="Box cloud storage integration",
                icon="box-icon",
                capabilities=BoxProvider.default_capabilities,
                enabled=settings.box_enabled,
            ),
            ProviderConfig(
                client_id=settings.box_client_id,
                client_secret=settings.box_client_secret,
                scopes=BOX_SCOPES,
                auth_endpoint=BOX_OAUTH_AUTHORIZE_URL,
                token_endpoint=BOX_OAUTH_TOKEN_URL,
                api_endpoint=BOX_API_BASE,
                quota_limits=_quota(settings.box_requests_per_minute),
            ),
            BoxProvider,
        ),
        (
            ProviderMetadata(
                id=OneDriveProvider.provider_id,
                name="OneDrive",
                description="Microsoft OneDrive cloud storage integration",
                icon="onedrive-icon",
                capabilities=OneDriveProvider.default_capabilities,
                enabled=settings.onedrive_enabled,
            ),
            ProviderConfig(
                client_id=settings.onedrive_client_id,
                client_secret=settings.onedrive_client_secret,
                scopes=ONEDRIVE_SCOPES,
                auth_endpoint=MICROSOFT_OAUTH_AUTHORIZE_URL,
                token_endpoint=MICROSOFT_OAUTH_TOKEN_URL,
                api_endpoint=GRAPH_BASE_URL,
                quota_limits=_quota(settings.onedrive_requests_per_minute),
            ),
            OneDriveProvider,
        ),
    ]


def build_registry(settings: Optional[CloudStorageSettings] = None) -> ProviderRegistry:
    """Create a registry populated with every bundled provider."""
    settings = settings or get_settings()
    registry = ProviderRegistry(request_timeout=settings.request_timeout_seconds)

    for metadata, config, factory in provider_registrations(settings):
        registry.register(metadata, config, factory)
        if metadata.enabled and not config.client_id:
            logger.warning(f"{metadata.name} is enabled but has no OAuth client id configured")

    logger.info(
        f"Registered {len(registry.list())} cloud providers "
        f"({len(registry.list_enabled())} enabled)"
    )
    return registry
