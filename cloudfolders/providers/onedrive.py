"""Microsoft Graph provider for OneDrive folders."""

import logging
from typing import Optional
from urllib.parse import quote

from cloudfolders.errors import InvalidInputError
from cloudfolders.providers.base import (
    BaseCloudProvider,
    CloudFolder,
    ListFoldersOptions,
    ListFoldersResponse,
    ProviderCapabilities,
)

logger = logging.getLogger(__name__)

# Microsoft Graph constants
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
MICROSOFT_OAUTH_AUTHORIZE_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
MICROSOFT_OAUTH_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
ONEDRIVE_SCOPES = ("offline_access", "Files.ReadWrite")

DRIVE_ROOT_PREFIX = "/drive/root:"


class OneDriveProvider(BaseCloudProvider):
    """OneDrive provider using Microsoft Graph."""

    provider_id = "onedrive"
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
        return self.config.api_endpoint or GRAPH_BASE_URL

    def _item_path(self, folder_id: Optional[str]) -> str:
        if not folder_id or folder_id in self.root_aliases:
            return f"{self.api_base}/me/drive/root"
        return f"{self.api_base}/me/drive/items/{folder_id}"

    async def _list_folders(self, options: ListFoldersOptions) -> ListFoldersResponse:
        if options.page_token:
            # Graph pages are absolute @odata.nextLink URLs; only follow our own API.
            if not options.page_token.startswith(self.api_base + "/"):
                raise InvalidInputError("Invalid page_token")
            result = await self._request("GET", options.page_token, "list folders")
        else:
            result = await self._request(
                "GET",
                f"{self._item_path(options.parent_id)}/children",
                "list folders",
                params={
                    "$top": options.page_size or 100,
                    "$select": "id,name,folder,parentReference",
                },
            )

        search = (options.search or "").lower()
        folders = tuple(
            self._parse_folder(item)
            for item in result.get("value", [])
            if "folder" in item and (not search or search in item.get("name", "").lower())
        )
        return ListFoldersResponse(folders=folders, next_page_token=result.get("@odata.nextLink"))

    async def _create_folder(self, parent_id: str, name: str) -> CloudFolder:
        result = await self._request(
            "POST",
            f"{self._item_path(parent_id)}/children",
            "create folder",
            json={
                "name": name,
                "folder": {},
                "@microsoft.graph.conflictBehavior": "fail",
            },
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
        await self._request("DELETE", self._item_path(folder_id), "remove folder")

    async def _search(self, query: str) -> list[CloudFolder]:
        escaped = quote(query.replace("'", "''"), safe="")
        result = await self._request(
            "GET",
            f"{self.api_base}/me/drive/root/search(q='{escaped}')",
            "search folders",
            params={"$top": 50},
        )
        return [self._parse_folder(item) for item in result.get("value", []) if "folder" in item]

    async def _validate_token(self) -> None:
        await self._request("GET", f"{self.api_base}/me/drive", "validate token", params={"$select": "id"})

    def _parse_folder(self, item: dict) -> CloudFolder:
        parent = item.get("parentReference", {})
        parent_path = parent.get("path", "")
        if parent_path.startswith(DRIVE_ROOT_PREFIX):
            parent_path = parent_path[len(DRIVE_ROOT_PREFIX):]
        name = item.get("name", "")

        return CloudFolder(
            id=item.get("id", ""),
            name=name,
            path=f"{parent_path.rstrip('/')}/{name}",
            parent_id=parent.get("id"),
            has_children=item.get("folder", {}).get("childCount", 1) > 0,
        )
