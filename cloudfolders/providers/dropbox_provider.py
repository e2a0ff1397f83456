"""
Dropbox Provider Implementation

Folder operations against the Dropbox API v2. Dropbox addresses entries by
path (or ``id:`` identifiers on read endpoints) and reports path errors as
HTTP 409 with a tagged error body.
"""

import logging
from typing import Optional

import httpx

from cloudfolders.errors import NotFoundError, OperationFailedError
from cloudfolders.providers.base import (
    BaseCloudProvider,
    CloudFolder,
    ListFoldersOptions,
    ListFoldersResponse,
    ProviderCapabilities,
)

logger = logging.getLogger(__name__)

# Dropbox API constants
DROPBOX_API_BASE = "https://api.dropboxapi.com/2"
DROPBOX_OAUTH_AUTHORIZE_URL = "https://www.dropbox.com/oauth2/authorize"
DROPBOX_OAUTH_TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
DROPBOX_SCOPES = ("files.metadata.read", "files.content.write")


class DropboxProvider(BaseCloudProvider):
    """Dropbox provider using Dropbox API v2."""

    provider_id = "dropbox"
    default_capabilities = ProviderCapabilities(
        folder_listing=True,
        folder_creation=True,
        folder_deletion=True,
        search=True,
        thumbnails=True,
        sharing=True,
    )

    @property
    def api_base(self) -> str:
        return self.config.api_endpoint or DROPBOX_API_BASE

    async def _call(self, endpoint: str, operation: str, data: Optional[dict] = None) -> dict:
        """Dropbox RPC endpoints are all POST with a JSON body."""
        if data is None:
            return await self._request("POST", f"{self.api_base}/{endpoint}", operation)
        return await self._request("POST", f"{self.api_base}/{endpoint}", operation, json=data)

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        if response.status_code == 409:
            # Dropbox uses 409 for path errors
            try:
                summary = response.json().get("error_summary", "")
            except ValueError:
                summary = ""
            if "not_found" in summary:
                raise NotFoundError("Folder not found")
            raise OperationFailedError(operation, f"Dropbox error: {summary or 'conflict'}")
        super()._raise_for_status(response, operation)

    def _normalize_path(self, folder_id: Optional[str]) -> str:
        path = folder_id or ""
        if path in self.root_aliases:
            return ""
        if not path.startswith(("/", "id:", "ns:")):
            path = "/" + path
        return path

    def _canonical_parent(self, parent_id: Optional[str]) -> Optional[str]:
        path = self._normalize_path(parent_id)
        if not path:
            return None
        if path.startswith(("id:", "ns:")):
            return path
        # Dropbox paths are case-insensitive.
        return path.rstrip("/").lower() or None

    # ==================== Folder Operations ====================

    async def _list_folders(self, options: ListFoldersOptions) -> ListFoldersResponse:
        if options.page_token:
            result = await self._call(
                "files/list_folder/continue", "list folders", {"cursor": options.page_token}
            )
        else:
            request = {
                "path": self._normalize_path(options.parent_id),
                "recursive": False,
                "include_deleted": False,
                "include_mounted_folders": True,
                "include_non_downloadable_files": False,
            }
            if options.page_size:
                request["limit"] = options.page_size
            result = await self._call("files/list_folder", "list folders", request)

        search = (options.search or "").lower()
        folders = tuple(
            self._parse_folder(entry)
            for entry in result.get("entries", [])
            if entry.get(".tag") == "folder"
            and (not search or search in entry.get("name", "").lower())
        )

        return ListFoldersResponse(
            folders=folders,
            next_page_token=result.get("cursor") if result.get("has_more") else None,
        )

    async def _resolve_path(self, folder_id: str) -> str:
        """Turn an ``id:`` reference into a display path."""
        path = self._normalize_path(folder_id)
        if not path.startswith("id:"):
            return path
        metadata = await self._call("files/get_metadata", "resolve folder path", {"path": path})
        return metadata.get("path_display") or metadata.get("path_lower", "")

    async def _create_folder(self, parent_id: str, name: str) -> CloudFolder:
        parent_path = await self._resolve_path(parent_id)
        path = f"{parent_path}/{name}".replace("//", "/")

        result = await self._call(
            "files/create_folder_v2", "create folder", {"path": path, "autorename": False}
        )
        folder = self._parse_folder(result.get("metadata", {}))
        logger.debug(f"Created Dropbox folder {folder.path}")
        return CloudFolder(
            id=folder.id,
            name=folder.name,
            path=folder.path,
            parent_id=folder.parent_id,
            has_children=False,
        )

    async def _delete_folder(self, folder_id: str) -> None:
        await self._call("files/delete_v2", "remove folder", {"path": self._normalize_path(folder_id)})

    async def _search(self, query: str) -> list[CloudFolder]:
        result = await self._call("files/search_v2", "search folders", {
            "query": query,
            "options": {"max_results": 100, "filename_only": True},
        })

        folders = []
        for match in result.get("matches", []):
            entry = match.get("metadata", {}).get("metadata", {})
            if entry.get(".tag") == "folder":
                folders.append(self._parse_folder(entry))
        return folders

    async def _validate_token(self) -> None:
        await self._call("users/get_current_account", "validate token")

    # ==================== Parsing ====================

    def _parse_folder(self, entry: dict) -> CloudFolder:
        """Parse Dropbox folder entry."""
        path = entry.get("path_display", entry.get("path_lower", "/"))
        name = entry.get("name", path.split("/")[-1])

        return CloudFolder(
            id=entry.get("id", path),
            name=name,
            path=path,
            parent_id=self._get_parent_path(path),
        )

    def _get_parent_path(self, path: str) -> Optional[str]:
        """Get parent path from a path."""
        if not path or path == "/":
            return None
        parts = path.rstrip("/").rsplit("/", 1)
        if len(parts) > 1:
            return parts[0] or "/"
        return None
