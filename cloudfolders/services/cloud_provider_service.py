"""
Cloud Provider Service

Runs folder operations for one tenant integration against the adapter the
registry resolves for it. Listing gets one refresh-and-retry cycle on an
authorization failure; create, delete and search do not retry.
"""

import logging
from typing import Optional

from cloudfolders.errors import (
    CloudProviderError,
    InvalidInputError,
    OperationFailedError,
    ReauthenticationRequiredError,
    UnsupportedProviderError,
)
from cloudfolders.providers.base import (
    BaseCloudProvider,
    CloudFolder,
    ListFoldersOptions,
    ListFoldersResponse,
    TokenInfo,
)
from cloudfolders.providers.registry import ProviderRegistry, normalize_provider_id
from cloudfolders.services.integration import Integration
from cloudfolders.services.token_refresh import IntegrationStore, TokenRefresher

logger = logging.getLogger(__name__)


class CloudProviderService:
    """Folder operations for a single tenant integration."""

    def __init__(
        self,
        integration: Integration,
        registry: ProviderRegistry,
        token_refresher: TokenRefresher,
        tenant_id: Optional[str] = None,
        integration_store: Optional[IntegrationStore] = None,
    ):
        if integration is None:
            raise InvalidInputError("Integration is required for cloud operations")
        if not integration.provider:
            raise InvalidInputError("Provider is required for cloud operations")

        self.integration = integration
        self.integration.tenant_id = tenant_id or integration.tenant_id
        if not self.integration.tenant_id:
            raise InvalidInputError("TenantId is required for cloud provider operations")

        self.registry = registry
        self.token_refresher = token_refresher
        self.integration_store = integration_store
        self._provider: Optional[BaseCloudProvider] = None

        self._validate_provider()

    @property
    def provider_id(self) -> str:
        return normalize_provider_id(self.integration.provider)

    @property
    def tenant_id(self) -> str:
        return self.integration.tenant_id

    # ==================== Operations ====================

    async def list_folders(
        self,
        options: Optional[ListFoldersOptions] = None,
        timeout: Optional[float] = None,
    ) -> ListFoldersResponse:
        options = options or ListFoldersOptions()
        provider = self.provider_id
        self._validate_provider()

        logger.debug(
            f"Listing cloud folders: provider={provider} parent={options.parent_id} "
            f"search={options.search!r} tenant={self.tenant_id}"
        )

        try:
            result = await self._get_provider().list_folders(options, timeout=timeout)
        except CloudProviderError as e:
            if not e.is_authorization_failure:
                self._log_failure("list cloud folders", e)
                raise
            logger.warning(f"Authorization failed listing {provider} folders for tenant {self.tenant_id}; refreshing token")
            result = await self._retry_list_after_refresh(options, timeout)
        except Exception as e:
            self._log_failure("list cloud folders", e)
            raise OperationFailedError(f"list folders from {provider}", str(e) or "Unknown error") from e

        logger.debug(
            f"Listed {len(result.folders)} cloud folders from {provider} "
            f"(more={result.has_more}) for tenant {self.tenant_id}"
        )
        return result

    async def create_folder(
        self,
        parent_id: str,
        name: str,
        timeout: Optional[float] = None,
    ) -> CloudFolder:
        provider = self.provider_id
        self._validate_provider()
        logger.debug(f"Creating folder {name!r} under {parent_id!r} in {provider} for tenant {self.tenant_id}")

        try:
            folder = await self._get_provider().create_new_folder(parent_id, name, timeout=timeout)
        except CloudProviderError as e:
            self._log_failure("create folder", e)
            raise
        except Exception as e:
            self._log_failure("create folder", e)
            raise OperationFailedError(f"create folder in {provider}", str(e) or "Unknown error") from e

        logger.debug(f"Created folder {folder.id} at {folder.path} in {provider} for tenant {self.tenant_id}")
        return folder

    async def delete_folder(self, folder_id: str, timeout: Optional[float] = None) -> None:
        provider = self.provider_id
        self._validate_provider()
        logger.debug(f"Deleting folder {folder_id!r} in {provider} for tenant {self.tenant_id}")

        try:
            await self._get_provider().remove_folder(folder_id, timeout=timeout)
        except CloudProviderError as e:
            self._log_failure("delete folder", e)
            raise
        except Exception as e:
            self._log_failure("delete folder", e)
            raise OperationFailedError(f"delete folder in {provider}", str(e) or "Unknown error") from e

        logger.debug(f"Deleted folder {folder_id} in {provider} for tenant {self.tenant_id}")

    async def search(self, query: str, timeout: Optional[float] = None) -> list[CloudFolder]:
        provider = self.provider_id
        self._validate_provider()
        logger.debug(f"Searching folders for {query!r} in {provider} for tenant {self.tenant_id}")

        try:
            folders = await self._get_provider().search(query, timeout=timeout)
        except CloudProviderError as e:
            self._log_failure("search folders", e)
            raise
        except Exception as e:
            self._log_failure("search folders", e)
            raise OperationFailedError(f"search folders in {provider}", str(e) or "Unknown error") from e

        logger.debug(f"Found {len(folders)} folders matching {query!r} in {provider}")
        return folders

    async def close(self) -> None:
        if self._provider is not None:
            await self._provider.close()
            self._provider = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ==================== Internals ====================

    def _validate_provider(self) -> None:
        if self.registry.resolve(self.provider_id) is None:
            raise UnsupportedProviderError(self.provider_id)

    def _get_provider(self) -> BaseCloudProvider:
        """The adapter bound to the current token, built on first use."""
        if self._provider is None:
            self._provider = self._create_provider()
        return self._provider

    def _create_provider(self) -> BaseCloudProvider:
        token_info = self.integration.token_info() if self.integration.refresh_token else None
        provider = self.registry.create_instance(self.provider_id, self.integration.token, token_info)
        if provider is None:
            raise UnsupportedProviderError(self.provider_id)
        provider.on_token_refreshed = self._store_refreshed_token
        return provider

    async def _store_refreshed_token(self, token_info: TokenInfo) -> None:
        """Keep the integration in step with a token the adapter renewed itself."""
        self.integration.apply_token(token_info)
        if self.integration_store is not None:
            await self.integration_store.save_integration(self.integration)
        logger.info(f"Stored refreshed {self.provider_id} token for tenant {self.tenant_id}")

    async def _retry_list_after_refresh(
        self,
        options: ListFoldersOptions,
        timeout: Optional[float],
    ) -> ListFoldersResponse:
        """Refresh the tenant's token once and retry the listing on a fresh adapter."""
        provider = self.provider_id
        try:
            refreshed = await self.token_refresher.refresh_token(self.tenant_id, provider)
            refreshed.tenant_id = refreshed.tenant_id or self.tenant_id
            self.integration = refreshed

            if self._provider is not None:
                await self._provider.close()
                self._provider = None

            return await self._get_provider().list_folders(options, timeout=timeout)
        except Exception as e:
            logger.error(
                f"Retry after token refresh failed for {provider} (tenant {self.tenant_id}): {e}"
            )
            raise ReauthenticationRequiredError(
                f"Authentication failed for {provider}. Please reconnect your account."
            ) from e

    def _log_failure(self, operation: str, error: Exception) -> None:
        logger.error(
            f"Failed to {operation}: provider={self.provider_id} tenant={self.tenant_id} error={error}"
        )
