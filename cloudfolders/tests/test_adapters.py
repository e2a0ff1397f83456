"""
Tests for the HTTP adapters (Dropbox, Google Drive, Box, OneDrive).

Each adapter talks to an httpx MockTransport; the handler plays the backend.
"""

import json
from datetime import timedelta
from email.utils import format_datetime

import httpx
import pytest

from cloudfolders.core.config import CloudStorageSettings
from cloudfolders.errors import (
    InvalidInputError,
    NotFoundError,
    OperationFailedError,
    RateLimitExceededError,
    ReauthenticationRequiredError,
)
from cloudfolders.providers.base import ListFoldersOptions, TokenInfo, utcnow
from cloudfolders.providers.box import BoxProvider
from cloudfolders.providers.config import provider_registrations
from cloudfolders.providers.dropbox_provider import DropboxProvider
from cloudfolders.providers.google_drive import GoogleDriveProvider
from cloudfolders.providers.onedrive import OneDriveProvider

LIST_FOLDER_PATH = "/2/files/list_folder"
CREATE_FOLDER_PATH = "/2/files/create_folder_v2"


def make_adapter(provider_class, handler, token_info=None, settings=None):
    """Build an adapter with its bundled config and a mocked transport."""
    configs = {
        metadata.id: config
        for metadata, config, _ in provider_registrations(settings or CloudStorageSettings())
    }
    return provider_class(
        "token-1",
        configs[provider_class.provider_id],
        token_info=token_info,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def body(request: httpx.Request) -> dict:
    return json.loads(request.content) if request.content else {}


def drive_tree(request: httpx.Request) -> httpx.Response:
    """Drive backend holding root > A (a) > B (b) > Sub (s) > Leaf (l)."""
    items = {
        "a": {"name": "A", "parents": ["root"]},
        "b": {"name": "B", "parents": ["a"]},
    }
    children = {
        "b": [{"id": "s", "name": "Sub", "parents": ["b"]}],
        "s": [{"id": "l", "name": "Leaf", "parents": ["s"]}],
    }
    folder_id = request.url.path.rsplit("/", 1)[-1]
    if folder_id in items:
        return httpx.Response(200, json=items[folder_id])
    for parent_id, files in children.items():
        if f"'{parent_id}' in parents" in request.url.params["q"]:
            return httpx.Response(200, json={"files": files})
    return httpx.Response(200, json={"files": []})


class TestDropboxProvider:
    """Tests for DropboxProvider."""

    @pytest.mark.asyncio
    async def test_list_root_folders(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={
                "entries": [
                    {".tag": "folder", "id": "id:1", "name": "Docs", "path_display": "/Docs"},
                    {".tag": "file", "id": "id:2", "name": "a.txt", "path_display": "/a.txt"},
                ],
                "cursor": "cursor-1",
                "has_more": True,
            })

        provider = make_adapter(DropboxProvider, handler)
        result = await provider.list_folders(ListFoldersOptions(parent_id="root", page_size=25))

        assert requests[0].url.path == "/2/files/list_folder"
        assert requests[0].headers["Authorization"] == "Bearer token-1"
        assert body(requests[0])["path"] == ""
        assert body(requests[0])["limit"] == 25

        assert len(result.folders) == 1
        folder = result.folders[0]
        assert (folder.id, folder.name, folder.path, folder.parent_id) == ("id:1", "Docs", "/Docs", "/")
        assert result.next_page_token == "cursor-1"
        assert result.has_more is True

    @pytest.mark.asyncio
    async def test_list_continues_with_cursor(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"entries": [], "cursor": "cursor-2", "has_more": False})

        provider = make_adapter(DropboxProvider, handler)
        result = await provider.list_folders(ListFoldersOptions(page_token="cursor-1"))

        assert requests[0].url.path == "/2/files/list_folder/continue"
        assert body(requests[0]) == {"cursor": "cursor-1"}
        assert result.next_page_token is None

    @pytest.mark.asyncio
    async def test_list_filters_by_search(self):
        def handler(request):
            return httpx.Response(200, json={"entries": [
                {".tag": "folder", "id": "id:1", "name": "Reports 2024", "path_display": "/Reports 2024"},
                {".tag": "folder", "id": "id:2", "name": "Photos", "path_display": "/Photos"},
            ], "has_more": False})

        provider = make_adapter(DropboxProvider, handler)
        result = await provider.list_folders(ListFoldersOptions(search="report"))

        assert [f.name for f in result.folders] == ["Reports 2024"]

    @pytest.mark.asyncio
    async def test_create_under_folder_id(self):
        """An id: parent is resolved to its path before creating."""
        def handler(request):
            if request.url.path == "/2/files/get_metadata":
                return httpx.Response(200, json={"path_display": "/Projects"})
            assert body(request) == {"path": "/Projects/Reports", "autorename": False}
            return httpx.Response(200, json={"metadata": {
                "id": "id:9", "name": "Reports", "path_display": "/Projects/Reports",
            }})

        provider = make_adapter(DropboxProvider, handler)
        folder = await provider.create_new_folder("id:abc", "Reports")

        assert folder.path == "/Projects/Reports"
        assert folder.parent_id == "/Projects"
        assert folder.has_children is False

    @pytest.mark.asyncio
    async def test_path_not_found(self):
        def handler(request):
            return httpx.Response(409, json={"error_summary": "path/not_found/.."})

        provider = make_adapter(DropboxProvider, handler)

        with pytest.raises(NotFoundError):
            await provider.list_folders(ListFoldersOptions(parent_id="/missing"))

    @pytest.mark.asyncio
    async def test_path_conflict(self):
        def handler(request):
            return httpx.Response(409, json={"error_summary": "path/conflict/folder/."})

        provider = make_adapter(DropboxProvider, handler)

        with pytest.raises(OperationFailedError) as exc_info:
            await provider.create_new_folder("root", "Reports")

        assert "path/conflict" in exc_info.value.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error_class,retryable", [
        (401, ReauthenticationRequiredError, False),
        (404, NotFoundError, False),
        (403, OperationFailedError, False),
        (500, OperationFailedError, True),
        (503, OperationFailedError, True),
    ])
    async def test_status_mapping(self, status, error_class, retryable):
        def handler(request):
            return httpx.Response(status, json={"error_summary": "boom"})

        provider = make_adapter(DropboxProvider, handler)

        with pytest.raises(error_class) as exc_info:
            await provider.list_folders()

        assert exc_info.value.retryable is retryable

    @pytest.mark.asyncio
    async def test_backend_rate_limit(self):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "7"})

        provider = make_adapter(DropboxProvider, handler)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await provider.list_folders()

        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_backend_rate_limit_with_http_date(self):
        """Retry-After given as an HTTP date still maps to a rate-limit error."""
        retry_at = format_datetime(utcnow() + timedelta(seconds=30), usegmt=True)

        def handler(request):
            return httpx.Response(429, headers={"Retry-After": retry_at})

        provider = make_adapter(DropboxProvider, handler)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await provider.list_folders()

        assert 0 <= exc_info.value.retry_after <= 30

    @pytest.mark.asyncio
    async def test_backend_rate_limit_with_unreadable_retry_after(self):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "later"})

        provider = make_adapter(DropboxProvider, handler)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await provider.list_folders()

        assert exc_info.value.retry_after is None

    @pytest.mark.asyncio
    async def test_create_invalidates_listing_under_other_spelling(self):
        """'Reports' and '/Reports' name one Dropbox folder and share a cache entry."""
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.path == CREATE_FOLDER_PATH:
                return httpx.Response(200, json={"metadata": {
                    "id": "id:7", "name": "Q3", "path_display": "/Reports/Q3",
                }})
            return httpx.Response(200, json={"entries": [], "has_more": False})

        provider = make_adapter(DropboxProvider, handler)
        await provider.list_folders(ListFoldersOptions(parent_id="/Reports"))
        await provider.create_new_folder("Reports", "Q3")
        await provider.list_folders(ListFoldersOptions(parent_id="/Reports"))

        list_calls = [r for r in requests if r.url.path == LIST_FOLDER_PATH]
        assert len(list_calls) == 2
        assert body(requests[1])["path"] == "/Reports/Q3"

    @pytest.mark.asyncio
    async def test_path_spellings_share_listing_cache(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"entries": [], "has_more": False})

        provider = make_adapter(DropboxProvider, handler)
        await provider.list_folders(ListFoldersOptions(parent_id="/Reports"))
        await provider.list_folders(ListFoldersOptions(parent_id="reports/"))

        assert len(requests) == 1
        assert provider.is_listing_cached(ListFoldersOptions(parent_id="/REPORTS"))

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_adapter(DropboxProvider, handler)

        with pytest.raises(OperationFailedError) as exc_info:
            await provider.list_folders()

        assert exc_info.value.retryable is True
        assert exc_info.value.kind == "error"

    @pytest.mark.asyncio
    async def test_search_keeps_folder_matches(self):
        def handler(request):
            assert request.url.path == "/2/files/search_v2"
            return httpx.Response(200, json={"matches": [
                {"metadata": {"metadata": {".tag": "folder", "id": "id:1", "name": "Docs", "path_display": "/Docs"}}},
                {"metadata": {"metadata": {".tag": "file", "id": "id:2", "name": "Docs.txt", "path_display": "/Docs.txt"}}},
            ]})

        provider = make_adapter(DropboxProvider, handler)
        folders = await provider.search("Docs")

        assert [f.id for f in folders] == ["id:1"]

    @pytest.mark.asyncio
    async def test_refreshes_expiring_token_at_token_endpoint(self):
        """The renewed access token is used for the call that triggered it."""
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.path == "/oauth2/token":
                return httpx.Response(200, json={"access_token": "token-2", "expires_in": 14400})
            return httpx.Response(200, json={"entries": [], "has_more": False})

        provider = make_adapter(DropboxProvider, handler, token_info=TokenInfo(
            access_token="token-1",
            refresh_token="refresh-1",
            expires_at=utcnow() + timedelta(seconds=30),
        ))
        await provider.list_folders()

        token_request, list_request = requests
        assert b"grant_type=refresh_token" in token_request.content
        assert b"refresh_token=refresh-1" in token_request.content
        assert token_request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert list_request.headers["Authorization"] == "Bearer token-2"
        assert provider.token_info.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_rejected_refresh(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant"})

        provider = make_adapter(DropboxProvider, handler, token_info=TokenInfo(
            access_token="token-1",
            refresh_token="revoked",
            expires_at=utcnow() - timedelta(minutes=5),
        ))

        with pytest.raises(ReauthenticationRequiredError):
            await provider.list_folders()

    @pytest.mark.asyncio
    async def test_validate_token(self):
        def handler(request):
            if request.url.path == "/2/users/get_current_account":
                return httpx.Response(401, json={"error_summary": "invalid_access_token/"})
            return httpx.Response(200, json={})

        provider = make_adapter(DropboxProvider, handler)

        assert await provider.validate_token() is False


class TestGoogleDriveProvider:
    """Tests for GoogleDriveProvider."""

    @pytest.mark.asyncio
    async def test_list_root_folders(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={
                "files": [{"id": "a", "name": "Docs", "parents": ["root"]}],
                "nextPageToken": "page-2",
            })

        provider = make_adapter(GoogleDriveProvider, handler)
        result = await provider.list_folders()

        query = requests[0].url.params["q"]
        assert "'root' in parents" in query
        assert "trashed = false" in query
        assert len(requests) == 1

        folder = result.folders[0]
        assert (folder.id, folder.path, folder.parent_id) == ("a", "/Docs", "root")
        assert result.next_page_token == "page-2"

    @pytest.mark.asyncio
    async def test_list_nested_builds_paths(self):
        def handler(request):
            if request.url.path == "/drive/v3/files/f1":
                return httpx.Response(200, json={"name": "Projects", "parents": ["root"]})
            assert request.url.params["pageToken"] == "page-2"
            return httpx.Response(200, json={"files": [{"id": "s", "name": "Sub", "parents": ["f1"]}]})

        provider = make_adapter(GoogleDriveProvider, handler)
        result = await provider.list_folders(ListFoldersOptions(parent_id="f1", page_token="page-2"))

        assert result.folders[0].path == "/Projects/Sub"
        assert result.has_more is False

    @pytest.mark.asyncio
    async def test_search_query_is_escaped(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"files": []})

        provider = make_adapter(GoogleDriveProvider, handler)
        await provider.list_folders(ListFoldersOptions(search="O'Brien"))

        assert "name contains 'O\\'Brien'" in requests[0].url.params["q"]

    @pytest.mark.asyncio
    async def test_create_in_root(self):
        def handler(request):
            assert request.method == "POST"
            assert body(request)["parents"] == ["root"]
            return httpx.Response(200, json={"id": "n", "name": "Reports", "parents": ["root"]})

        provider = make_adapter(GoogleDriveProvider, handler)
        folder = await provider.create_new_folder("/", "Reports")

        assert (folder.id, folder.path, folder.parent_id) == ("n", "/Reports", "root")

    @pytest.mark.asyncio
    async def test_delete_missing_folder(self):
        def handler(request):
            return httpx.Response(404, json={"error": {"message": "File not found"}})

        provider = make_adapter(GoogleDriveProvider, handler)

        with pytest.raises(NotFoundError):
            await provider.remove_folder("gone")

    @pytest.mark.asyncio
    async def test_path_lookups_count_against_rate_limit(self):
        """Listing a nested folder spends one request per parent lookup."""
        requests = []

        def handler(request):
            requests.append(request)
            return drive_tree(request)

        settings = CloudStorageSettings(google_drive_requests_per_minute=2)
        provider = make_adapter(GoogleDriveProvider, handler, settings=settings)

        with pytest.raises(RateLimitExceededError):
            await provider.list_folders(ListFoldersOptions(parent_id="b"))

        assert len(requests) == 2

    @pytest.mark.asyncio
    async def test_nested_listing_within_budget(self):
        settings = CloudStorageSettings(google_drive_requests_per_minute=3)
        provider = make_adapter(GoogleDriveProvider, drive_tree, settings=settings)

        result = await provider.list_folders(ListFoldersOptions(parent_id="b"))

        assert result.folders[0].path == "/A/B/Sub"
        assert provider._rate_limiter.remaining == 0

    @pytest.mark.asyncio
    async def test_known_paths_skip_parent_lookups(self):
        """A folder seen in an earlier listing needs no walk up its parents."""
        requests = []

        def handler(request):
            requests.append(request)
            return drive_tree(request)

        provider = make_adapter(GoogleDriveProvider, handler)
        await provider.list_folders(ListFoldersOptions(parent_id="b"))
        result = await provider.list_folders(ListFoldersOptions(parent_id="s"))

        assert len(requests) == 4
        assert result.folders[0].path == "/A/B/Sub/Leaf"


class TestBoxProvider:
    """Tests for BoxProvider."""

    @pytest.mark.asyncio
    async def test_list_root_folders(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={
                "entries": [
                    {
                        "type": "folder", "id": "11", "name": "Docs",
                        "parent": {"id": "0"},
                        "path_collection": {"entries": [{"id": "0", "name": "All Files"}]},
                    },
                    {"type": "file", "id": "12", "name": "a.txt"},
                ],
                "next_marker": "m2",
            })

        provider = make_adapter(BoxProvider, handler)
        result = await provider.list_folders(ListFoldersOptions(parent_id="root"))

        assert requests[0].url.path == "/2.0/folders/0/items"
        assert requests[0].url.params["usemarker"] == "true"
        assert [(f.id, f.path, f.parent_id) for f in result.folders] == [("11", "/Docs", "0")]
        assert result.next_page_token == "m2"

    @pytest.mark.asyncio
    async def test_create_nested_folder(self):
        def handler(request):
            assert body(request) == {"name": "Reports", "parent": {"id": "11"}}
            return httpx.Response(201, json={
                "type": "folder", "id": "21", "name": "Reports",
                "parent": {"id": "11"},
                "path_collection": {"entries": [
                    {"id": "0", "name": "All Files"},
                    {"id": "11", "name": "Projects"},
                ]},
            })

        provider = make_adapter(BoxProvider, handler)
        folder = await provider.create_new_folder("11", "Reports")

        assert folder.path == "/Projects/Reports"
        assert folder.has_children is False

    @pytest.mark.asyncio
    async def test_delete_is_recursive(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(204)

        provider = make_adapter(BoxProvider, handler)
        await provider.remove_folder("21")

        assert requests[0].method == "DELETE"
        assert requests[0].url.path == "/2.0/folders/21"
        assert requests[0].url.params["recursive"] == "true"


class TestOneDriveProvider:
    """Tests for OneDriveProvider."""

    @pytest.mark.asyncio
    async def test_list_root_folders(self):
        requests = []
        next_link = "https://graph.microsoft.com/v1.0/me/drive/root/children?$skiptoken=abc"

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={
                "value": [
                    {
                        "id": "A1", "name": "Docs", "folder": {"childCount": 0},
                        "parentReference": {"id": "ROOT", "path": "/drive/root:"},
                    },
                    {"id": "A2", "name": "a.txt", "file": {}},
                ],
                "@odata.nextLink": next_link,
            })

        provider = make_adapter(OneDriveProvider, handler)
        result = await provider.list_folders()

        assert requests[0].url.path == "/v1.0/me/drive/root/children"
        folder = result.folders[0]
        assert (folder.id, folder.path, folder.parent_id, folder.has_children) == ("A1", "/Docs", "ROOT", False)
        assert result.next_page_token == next_link

    @pytest.mark.asyncio
    async def test_follows_next_link(self):
        requests = []
        next_link = "https://graph.microsoft.com/v1.0/me/drive/root/children?$skiptoken=abc"

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"value": []})

        provider = make_adapter(OneDriveProvider, handler)
        await provider.list_folders(ListFoldersOptions(page_token=next_link))

        assert requests[0].url.host == "graph.microsoft.com"
        assert requests[0].url.params["$skiptoken"] == "abc"

    @pytest.mark.asyncio
    async def test_rejects_foreign_page_token(self):
        """Page tokens pointing outside Graph are never followed."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"value": []})

        provider = make_adapter(OneDriveProvider, handler)

        with pytest.raises(InvalidInputError):
            await provider.list_folders(ListFoldersOptions(page_token="https://evil.example.com/steal"))

        assert requests == []

    @pytest.mark.asyncio
    async def test_create_fails_on_conflict(self):
        def handler(request):
            assert body(request)["@microsoft.graph.conflictBehavior"] == "fail"
            assert request.url.path == "/v1.0/me/drive/items/P1/children"
            return httpx.Response(201, json={
                "id": "N1", "name": "Reports", "folder": {"childCount": 0},
                "parentReference": {"id": "P1", "path": "/drive/root:/Projects"},
            })

        provider = make_adapter(OneDriveProvider, handler)
        folder = await provider.create_new_folder("P1", "Reports")

        assert folder.path == "/Projects/Reports"
        assert folder.parent_id == "P1"

    @pytest.mark.asyncio
    async def test_search_query_is_url_encoded(self):
        """Reserved URL characters in the query stay inside the search() segment."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"value": []})

        provider = make_adapter(OneDriveProvider, handler)
        await provider.search("a?b#c O'Neil")

        raw_path = requests[0].url.raw_path
        assert b"search(q='a%3Fb%23c%20O%27%27Neil')" in raw_path
        assert requests[0].url.params["$top"] == "50"
