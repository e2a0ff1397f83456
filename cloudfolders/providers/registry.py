"""
Provider Registry

Maps a provider id to its metadata, OAuth configuration and adapter factory.
One registry is built at process start (see ``providers.config``) and passed
to the services that need it.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Optional, Type

from cloudfolders.providers.base import (
    BaseCloudProvider,
    ProviderConfig,
    ProviderMetadata,
    TokenInfo,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderRegistration:
    metadata: ProviderMetadata
    config: ProviderConfig
    factory: Type[BaseCloudProvider]


def normalize_provider_id(provider_id: Optional[str]) -> str:
    return (provider_id or "").strip().lower()


class ProviderRegistry:
    """In-memory registry of cloud storage providers."""

    def __init__(self, request_timeout: Optional[float] = None):
        self._providers: dict[str, ProviderRegistration] = {}
        self._request_timeout = request_timeout

    def register(
        self,
        metadata: ProviderMetadata,
        config: ProviderConfig,
        factory: Type[BaseCloudProvider],
    ) -> ProviderRegistration:
        """
        Add or replace a provider. Re-registering an id overwrites it.

        Raises:
            ValueError: If the id is empty, the config is missing, or the
                metadata advertises search the factory cannot perform
        """
        key = normalize_provider_id(metadata.id)
        if not key:
            raise ValueError("Provider id is required")
        if config is None:
            raise ValueError(f"Provider {key} has no configuration")
        if metadata.capabilities.search and not factory.implements_search():
            raise ValueError(
                f"Provider {key} advertises search but {factory.__name__} does not implement it"
            )

        if key != metadata.id:
            metadata = dataclasses.replace(metadata, id=key)

        logger.debug(f"Registering provider: {key} v{metadata.version} -> {factory.__name__}")
        registration = ProviderRegistration(metadata=metadata, config=config, factory=factory)
        self._providers[key] = registration
        return registration

    def resolve(self, provider_id: str) -> Optional[ProviderRegistration]:
        """Return the registration, or None when the id is unknown or disabled."""
        key = normalize_provider_id(provider_id)
        registration = self._providers.get(key)

        if registration is None:
            logger.debug(f"Provider not found: {key}")
            return None

        if not registration.metadata.enabled:
            logger.debug(f"Provider is disabled: {key}")
            return None

        return registration

    def create_instance(
        self,
        provider_id: str,
        token: str,
        token_info: Optional[TokenInfo] = None,
    ) -> Optional[BaseCloudProvider]:
        """Build an adapter bound to ``token``; None for unknown or disabled ids."""
        registration = self.resolve(provider_id)
        if registration is None:
            return None

        kwargs = {}
        if self._request_timeout is not None:
            kwargs["request_timeout"] = self._request_timeout

        return registration.factory(
            token,
            registration.config,
            token_info=token_info,
            capabilities=registration.metadata.capabilities,
            **kwargs,
        )

    def list(self) -> list[ProviderRegistration]:
        return list(self._providers.values())

    def list_enabled(self) -> list[ProviderRegistration]:
        return [p for p in self._providers.values() if p.metadata.enabled]

    def get_metadata(self, provider_id: str) -> Optional[ProviderMetadata]:
        registration = self.resolve(provider_id)
        return registration.metadata if registration else None

    def has_provider(self, provider_id: str) -> bool:
        """True when registered, enabled or not."""
        return normalize_provider_id(provider_id) in self._providers

    def is_enabled(self, provider_id: str) -> bool:
        return self.resolve(provider_id) is not None

    def set_enabled(self, provider_id: str, enabled: bool) -> bool:
        """Toggle a provider on or off. Returns False for unknown ids."""
        key = normalize_provider_id(provider_id)
        registration = self._providers.get(key)
        if registration is None:
            return False

        metadata = dataclasses.replace(registration.metadata, enabled=enabled)
        self._providers[key] = dataclasses.replace(registration, metadata=metadata)
        logger.info(f"Provider {key} {'enabled' if enabled else 'disabled'}")
        return True
