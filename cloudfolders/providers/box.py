"""
Box Provider Implementation

Folder operations against the Box Content API 2.0. The root folder is id
``"0"`` ("All Files"); every item carries its ancestor chain in
``path_collection``.
"""

import logging
from typing import Optional

from cloudfolders.providers.base import (
    BaseCloudProvider,
    CloudFolder,
    ListFoldersOptions,
    ListFoldersResponse,
    ProviderCapabilities,
)

logger = logging.getLogger(__name__)

# Box API constants
BOX_API_BASE = "https://api.box.com/2.0"
BOX_OAUTH_AUTHORIZE_URL = "https://account.box.com/api/oauth2/authorize"
BOX_OAUTH_TOKEN_URL = "https://api.box.com/oauth2/token"
BOX_SCOPES = ("root_readwrite",)

BOX_ROOT_ID = "0"
ITEM_FIELDS = "id,type,name,parent,path_collection"


class BoxProvider(BaseCloudProvider):
    """Box provider using the Box Content API."""

    provider_id = "box"
    default_capabilities = ProviderCapabilities(
        folder_listing=True,
        folder_creation=True,
        folder_deletion=True,
        search=True,
        thumbnails=True,
        sharing=True,
    )
    root_aliases = frozenset({"", "/", "root", BOX_ROOT_ID})

    @property
    def api_base(self) -> str:
        return self.config.api_endpoint or BOX_API_BASE

    def _folder_id(self, folder_id: Optional[str]) -> str:
        if not folder_id or folder_id in self.root_aliases:
            return BOX_ROOT_ID
        return folder_id

    async def _list_folders(self, options: ListFoldersOptions) -> ListFoldersResponse:
        folder_id = self._folder_id(options.parent_id)

        params = {
            "fields": ITEM_FIELDS,
            "usemarker": "true",
            "limit": options.page_size or 100,
        }
        if options.page_token:
            params["marker"] = options.page_token

        result = await self._request(
            "GET", f"{self.api_base}/folders/{folder_id}/items", "list folders", params=params
        )

        search = (options.search or "").lower()
        folders = tuple(
            self._parse_folder(entry)
            for entry in result.get("entries", [])
            if entry.get("type") == "folder"
            and (not search or search in entry.get("name", "").lower())
        )
        return ListFoldersResponse(folders=folders, next_page_token=result.get("next_marker") or None)

    async def _create_folder(self, parent_id: str, name: str) -> CloudFolder:
        result = await self._request(
            "POST",
            f"{self.api_base}/folders",
            "create folder",
            params={"fields": ITEM_FIELDS},
            json={"name": name, "parent": {"id": self._folder_id(parent_id)}},
        )
        folder = self._parse_folder(result)
        return CloudFolder(
            id=folder.id,
            name=folder.name,
            path=folder.path,
            parent_id=folder.parent_id,
            has_children=False,
        )

    async def _delete_folder(self, folder_id: str) -> None:
        await self._request(
            "DELETE",
            f"{self.api_base}/folders/{self._folder_id(folder_id)}",
            "remove folder",
            params={"recursive": "true"},
        )

    async def _search(self, query: str) -> list[CloudFolder]:
        result = await self._request("GET", f"{self.api_base}/search", "search folders", params={
            "query": query,
            "type": "folder",
            "content_types": "name",
            "fields": ITEM_FIELDS,
            "limit": 100,
        })
        return [self._parse_folder(entry) for entry in result.get("entries", [])]

    async def _validate_token(self) -> None:
        await self._request("GET", f"{self.api_base}/users/me", "validate token", params={"fields": "id"})

    def _parse_folder(self, entry: dict) -> CloudFolder:
        """Build the display path from ``path_collection`` (minus "All Files")."""
        ancestors = entry.get("path_collection", {}).get("entries", [])
        names = [a.get("name", "") for a in ancestors if a.get("id") != BOX_ROOT_ID]
        name = entry.get("name", "")
        parent = entry.get("parent") or {}

        return CloudFolder(
            id=str(entry.get("id", "")),
            name=name,
            path="/" + "/".join(names + [name]),
            parent_id=parent.get("id"),
        )
