"""
Google Drive Provider Implementation

Folder operations against the Google Drive API v3. Drive items only know
their parents, so display paths are built by walking the parent chain.
"""

import logging
from typing import Optional

from cloudfolders.core.result_cache import ResultCache
from cloudfolders.providers.base import (
    FOLDER_CACHE_TTL_SECONDS,
    BaseCloudProvider,
    CloudFolder,
    ListFoldersOptions,
    ListFoldersResponse,
    ProviderCapabilities,
)

logger = logging.getLogger(__name__)

# Google Drive API constants
GOOGLE_DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"
GOOGLE_OAUTH_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_DRIVE_SCOPES = (
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.metadata.readonly",
)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FOLDER_FIELDS = "id,name,parents"
LIST_FIELDS = f"nextPageToken,files({FOLDER_FIELDS})"
MAX_PATH_DEPTH = 64
PATH_CACHE_MAX_ENTRIES = 1000


def _quote(value: str) -> str:
    """Escape a literal for the Drive query language."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


class GoogleDriveProvider(BaseCloudProvider):
    """Google Drive provider using Drive API v3."""

    provider_id = "gdrive"
    default_capabilities = ProviderCapabilities(
        folder_listing=True,
        folder_creation=True,
        folder_deletion=True,
        search=True,
        thumbnails=True,
        sharing=True,
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Display paths by folder id; aged out with the listing cache.
        self._paths = ResultCache(clock=self._clock, max_entries=PATH_CACHE_MAX_ENTRIES)

    @property
    def api_base(self) -> str:
        return self.config.api_endpoint or GOOGLE_DRIVE_API_BASE

    def _folder_id(self, folder_id: Optional[str]) -> str:
        if not folder_id or folder_id in self.root_aliases:
            return "root"
        return folder_id

    # ==================== Folder Operations ====================

    async def _list_folders(self, options: ListFoldersOptions) -> ListFoldersResponse:
        parent_id = self._folder_id(options.parent_id)

        query = f"mimeType = '{FOLDER_MIME_TYPE}' and trashed = false and {_quote(parent_id)} in parents"
        if options.search:
            query += f" and name contains {_quote(options.search)}"

        params = {
            "q": query,
            "fields": LIST_FIELDS,
            "orderBy": "name",
            "pageSize": options.page_size or 100,
            "supportsAllDrives": "true",
            "includeItemsFromAllDrives": "true",
        }
        if options.page_token:
            params["pageToken"] = options.page_token

        result = await self._request("GET", f"{self.api_base}/files", "list folders", params=params)

        parent_path = await self._resolve_path(parent_id)
        folders = tuple(
            self._parse_folder(item, parent_path, parent_id)
            for item in result.get("files", [])
        )
        return ListFoldersResponse(folders=folders, next_page_token=result.get("nextPageToken"))

    async def _create_folder(self, parent_id: str, name: str) -> CloudFolder:
        parent_id = self._folder_id(parent_id)
        result = await self._request(
            "POST",
            f"{self.api_base}/files",
            "create folder",
            params={"fields": FOLDER_FIELDS, "supportsAllDrives": "true"},
            json={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
        )

        parent_path = await self._resolve_path(parent_id)
        folder = self._parse_folder(result, parent_path, parent_id)
        return CloudFolder(
            id=folder.id,
            name=folder.name,
            path=folder.path,
            parent_id=parent_id,
            has_children=False,
        )

    async def _delete_folder(self, folder_id: str) -> None:
        await self._request(
            "DELETE",
            f"{self.api_base}/files/{folder_id}",
            "remove folder",
            params={"supportsAllDrives": "true"},
        )
        self._paths.delete(folder_id)

    async def _search(self, query: str) -> list[CloudFolder]:
        result = await self._request("GET", f"{self.api_base}/files", "search folders", params={
            "q": f"mimeType = '{FOLDER_MIME_TYPE}' and trashed = false and name contains {_quote(query)}",
            "fields": LIST_FIELDS,
            "pageSize": 100,
        })

        folders = []
        for item in result.get("files", []):
            parents = item.get("parents") or []
            parent_id = parents[0] if parents else None
            parent_path = await self._resolve_path(parent_id) if parent_id else ""
            folders.append(self._parse_folder(item, parent_path, parent_id))
        return folders

    async def _validate_token(self) -> None:
        await self._request("GET", f"{self.api_base}/about", "validate token", params={"fields": "user"})

    # ==================== Paths ====================

    async def _resolve_path(self, folder_id: str) -> str:
        """
        Build ``/a/b/c`` for a folder by walking its parents.

        The walk stops at the first ancestor whose path is already known.
        Each lookup is a backend request and is rate limited as such.
        """
        if folder_id == "root":
            return "/"
        cached = self._paths.get(folder_id)
        if cached is not None:
            return cached

        parts: list[str] = []
        prefix = ""
        current: Optional[str] = folder_id
        for _ in range(MAX_PATH_DEPTH):
            if not current or current == "root":
                break
            if current != folder_id:
                known = self._paths.get(current)
                if known is not None:
                    prefix = known.rstrip("/")
                    break
            item = await self._request(
                "GET",
                f"{self.api_base}/files/{current}",
                "resolve folder path",
                params={"fields": "name,parents", "supportsAllDrives": "true"},
            )
            if not item.get("name"):
                break
            parents = item.get("parents") or []
            if not parents:
                # The top of My Drive reports itself by name ("My Drive").
                break
            parts.insert(0, item["name"])
            current = parents[0]

        path = prefix + "/" + "/".join(parts)
        self._paths.set(folder_id, path, FOLDER_CACHE_TTL_SECONDS)
        return path

    def _parse_folder(self, item: dict, parent_path: str, parent_id: Optional[str]) -> CloudFolder:
        name = item.get("name", "")
        path = f"{parent_path.rstrip('/')}/{name}"
        folder = CloudFolder(id=item.get("id", ""), name=name, path=path, parent_id=parent_id)
        if folder.id:
            self._paths.set(folder.id, path, FOLDER_CACHE_TTL_SECONDS)
        return folder
