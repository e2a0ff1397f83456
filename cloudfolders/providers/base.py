"""
Base Provider Interface and Data Classes

This module defines the operation set every cloud storage adapter must
implement, the shared data structures, and ``BaseCloudProvider``: the policy
layer wrapped around each adapter call (capability gating, input checks,
listing cache, OAuth token renewal, rate limiting and error normalisation).
"""

import asyncio
import contextvars
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from cloudfolders.core.rate_limiter import RateLimiter
from cloudfolders.core.result_cache import ResultCache
from cloudfolders.errors import (
    CloudProviderError,
    InvalidInputError,
    NotFoundError,
    OperationFailedError,
    RateLimitExceededError,
    ReauthenticationRequiredError,
    UnsupportedOperationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

FOLDER_CACHE_TTL_SECONDS = 300
TOKEN_REFRESH_BUFFER_SECONDS = 300
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0

# True while the request admitted by the dispatch-time rate check is unspent.
_admitted_request: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "admitted_request", default=False
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP date)."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - utcnow()).total_seconds())


def _json_body(response: httpx.Response) -> dict:
    if not response.headers.get("content-type", "").startswith("application/json"):
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


@dataclass(frozen=True)
class ProviderCapabilities:
    """Optional features a provider offers. Checked before every dispatch."""
    folder_listing: bool = True
    folder_creation: bool = False
    folder_deletion: bool = False
    search: bool = False
    thumbnails: bool = False
    sharing: bool = False

    def supports(self, capability: str) -> bool:
        if capability not in {f.name for f in fields(self)}:
            raise ValueError(f"Unknown capability: {capability}")
        return bool(getattr(self, capability))


@dataclass(frozen=True)
class ProviderMetadata:
    """Describes a registered provider."""
    id: str
    name: str
    description: str
    capabilities: ProviderCapabilities
    enabled: bool = True
    version: str = "1.0.0"
    icon: Optional[str] = None


@dataclass(frozen=True)
class QuotaLimits:
    requests_per_minute: Optional[int] = None
    storage_limit: Optional[int] = None  # bytes


@dataclass(frozen=True)
class ProviderConfig:
    """OAuth client settings and endpoints for one provider id."""
    client_id: str
    client_secret: str
    scopes: tuple[str, ...]
    auth_endpoint: str
    token_endpoint: str
    api_endpoint: str
    quota_limits: Optional[QuotaLimits] = None
    refresh_tokens: bool = True


@dataclass
class TokenInfo:
    """OAuth 2.0 token set held by one provider instance."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_type: str = "Bearer"
    scope: list[str] = field(default_factory=list)

    def expires_within(self, seconds: float) -> bool:
        """
        True when the token is expired or expires within ``seconds``.

        A token with no known expiry is treated as expiring.
        """
        if self.expires_at is None:
            return True
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            # Naive timestamps are stored in UTC.
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return utcnow() >= expires_at - timedelta(seconds=seconds)

    @classmethod
    def from_token_response(
        cls,
        data: dict[str, Any],
        fallback_refresh_token: Optional[str] = None,
    ) -> "TokenInfo":
        """
        Build from an OAuth token endpoint JSON body.

        Responses without ``expires_in`` get the default one-hour lifetime.
        """
        expires_in = data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS
        scope = data.get("scope") or ""
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or fallback_refresh_token,
            expires_at=utcnow() + timedelta(seconds=int(expires_in)),
            token_type=data.get("token_type", "Bearer"),
            scope=scope.split() if isinstance(scope, str) else list(scope),
        )


@dataclass(frozen=True)
class CloudFolder:
    """Represents a folder in a cloud source."""
    id: str
    name: str
    path: str
    parent_id: Optional[str] = None
    has_children: bool = True


@dataclass(frozen=True)
class ListFoldersOptions:
    """Listing request. Its canonical serialization is the cache key."""
    parent_id: Optional[str] = None
    search: Optional[str] = None
    page_token: Optional[str] = None
    page_size: Optional[int] = None

    def parent_prefix(self) -> str:
        """Key prefix shared by every listing of this parent folder."""
        return f"folders:{json.dumps(self.parent_id)}:"

    def cache_key(self) -> str:
        rest = {
            "search": self.search,
            "page_token": self.page_token,
            "page_size": self.page_size,
        }
        rest = {k: v for k, v in rest.items() if v not in (None, "")}
        return self.parent_prefix() + json.dumps(rest, sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class ListFoldersResponse:
    folders: tuple[CloudFolder, ...] = ()
    next_page_token: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_page_token is not None


async def refresh_access_token(
    client: httpx.AsyncClient,
    config: ProviderConfig,
    refresh_token: str,
) -> TokenInfo:
    """
    Exchange a refresh token at ``config.token_endpoint``.

    Providers that do not rotate refresh tokens keep the one passed in.

    Raises:
        ReauthenticationRequiredError: If the endpoint rejects the grant
        httpx.HTTPError: On transport failures
    """
    response = await client.post(
        config.token_endpoint,
        data={
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )

    if response.status_code != 200:
        error_data = _json_body(response)
        reason = error_data.get("error_description") or error_data.get("error") or "Token refresh failed"
        logger.error(f"Token endpoint rejected refresh: {reason}")
        raise ReauthenticationRequiredError("Failed to refresh access token")

    payload = _json_body(response)
    if not payload.get("access_token"):
        raise ReauthenticationRequiredError("Invalid token response: missing access_token")

    return TokenInfo.from_token_response(payload, fallback_refresh_token=refresh_token)


class BaseCloudProvider(ABC):
    """
    Abstract base class for cloud storage adapters.

    Subclasses implement the wire-level hooks (``_list_folders``,
    ``_create_folder``, ``_delete_folder``, ``_validate_token`` and, when the
    backend can search, ``_search``). Callers use the public coroutines, which
    apply, in order: capability check, input validation, listing cache, token
    refresh, rate limit, then the hook. Hooks that need more than one backend
    request (path resolution, for instance) pay for each extra request.

    One instance is bound to one tenant's token. Its cache, rate limiter and
    token state are never shared with other instances.
    """

    provider_id: str = ""
    default_capabilities = ProviderCapabilities()
    root_aliases: frozenset[str] = frozenset({"", "/", "root"})

    def __init__(
        self,
        token: str,
        config: ProviderConfig,
        token_info: Optional[TokenInfo] = None,
        capabilities: Optional[ProviderCapabilities] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not token or not isinstance(token, str):
            raise InvalidInputError("Token is required for cloud provider operations")

        self.token = token
        self.config = config
        self.capabilities = capabilities or self.default_capabilities
        self.token_info = token_info or TokenInfo(
            access_token=token,
            expires_at=utcnow() + timedelta(seconds=DEFAULT_TOKEN_LIFETIME_SECONDS),
        )

        self._rate_limiter: Optional[RateLimiter] = None
        if config.quota_limits and config.quota_limits.requests_per_minute:
            self._rate_limiter = RateLimiter(
                config.quota_limits.requests_per_minute, self.name, clock=clock
            )

        self._clock = clock
        self._cache = ResultCache(clock=clock)
        self._http_client = http_client
        self._request_timeout = request_timeout
        self._refresh_task: Optional[asyncio.Future] = None

        # Called with the new TokenInfo after this instance renews its token.
        self.on_token_refreshed: Optional[Callable[[TokenInfo], Awaitable[None]]] = None

    @property
    def name(self) -> str:
        return self.provider_id or type(self).__name__

    @classmethod
    def implements_search(cls) -> bool:
        return cls._search is not BaseCloudProvider._search

    # ==================== Public Operations ====================

    async def list_folders(
        self,
        options: Optional[ListFoldersOptions] = None,
        timeout: Optional[float] = None,
    ) -> ListFoldersResponse:
        """
        List folders under ``options.parent_id`` (the root when omitted).

        Results are cached for five minutes per distinct request shape; a
        cache hit costs no rate-limit budget.
        """
        options = options or ListFoldersOptions()
        self._require_capability("folder_listing", "list folders")
        self._validate_list_options(options)

        cache_key = self._listing_key(options)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Retrieved folders from cache for {self.name}: {cache_key}")
            return cached

        result = await self._run("list folders", lambda: self._list_folders(options), timeout)
        self._cache.set(cache_key, result, FOLDER_CACHE_TTL_SECONDS)
        return result

    async def create_new_folder(
        self,
        parent_id: str,
        name: str,
        timeout: Optional[float] = None,
    ) -> CloudFolder:
        """Create ``name`` under ``parent_id`` and invalidate that parent's listings."""
        self._require_capability("folder_creation", "create folder")
        self._validate_input(parent_id, "parent id")
        self._validate_input(name, "folder name")

        folder = await self._run(
            "create folder", lambda: self._create_folder(parent_id, name), timeout
        )
        self._invalidate_parent(parent_id)
        return folder

    async def remove_folder(self, folder_id: str, timeout: Optional[float] = None) -> None:
        """
        Delete a folder.

        The adapter cannot tell which parent the folder lived in, so the whole
        listing cache is dropped.
        """
        self._require_capability("folder_deletion", "remove folder")
        self._validate_input(folder_id, "folder id")

        await self._run("remove folder", lambda: self._delete_folder(folder_id), timeout)
        self._cache.clear()

    async def search(self, query: str, timeout: Optional[float] = None) -> list[CloudFolder]:
        """Search folders by name."""
        self._require_capability("search", "search")
        self._validate_input(query, "search query")
        if not self.implements_search():
            raise UnsupportedOperationError(
                f"Search not implemented by {self.name}", "search", status_code=501
            )
        return await self._run("search folders", lambda: self._search(query), timeout)

    async def validate_token(self) -> bool:
        """Check the current token against the backend."""
        try:
            await self._run("validate token", self._validate_token, None)
            return True
        except ReauthenticationRequiredError:
            return False
        except CloudProviderError as e:
            logger.warning(f"Token validation failed for {self.name}: {e}")
            return False

    def is_listing_cached(self, options: ListFoldersOptions) -> bool:
        return self._listing_key(options) in self._cache

    # ==================== Adapter Hooks ====================

    @abstractmethod
    async def _list_folders(self, options: ListFoldersOptions) -> ListFoldersResponse:
        pass

    @abstractmethod
    async def _create_folder(self, parent_id: str, name: str) -> CloudFolder:
        pass

    @abstractmethod
    async def _delete_folder(self, folder_id: str) -> None:
        pass

    @abstractmethod
    async def _validate_token(self) -> None:
        """Make a cheap authenticated call; raise on failure."""
        pass

    async def _search(self, query: str) -> list[CloudFolder]:
        raise UnsupportedOperationError(
            f"Search not implemented by {self.name}", "search", status_code=501
        )

    # ==================== Policy ====================

    async def _run(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        timeout: Optional[float],
    ) -> T:
        try:
            if timeout is None:
                return await self._dispatch(call)
            return await asyncio.wait_for(self._dispatch(call), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name}: {operation} timed out after {timeout}s")
            raise OperationFailedError(
                operation, f"timed out after {timeout}s", kind="timeout", retryable=True
            )
        except CloudProviderError:
            raise
        except Exception as e:
            logger.error(f"Provider operation failed: {operation} ({self.name}): {e}", exc_info=True)
            raise OperationFailedError(operation, str(e) or "Unknown error") from e

    async def _dispatch(self, call: Callable[[], Awaitable[T]]) -> T:
        await self._refresh_token_if_needed()
        if self._rate_limiter is None:
            return await call()

        self._rate_limiter.check_limit()
        admitted = _admitted_request.set(True)
        try:
            return await call()
        finally:
            _admitted_request.reset(admitted)

    def _consume_request_budget(self) -> None:
        """Charge every backend request after the first against the limiter."""
        if self._rate_limiter is None:
            return
        if _admitted_request.get():
            _admitted_request.set(False)
        else:
            self._rate_limiter.check_limit()

    def _require_capability(self, capability: str, operation: str) -> None:
        if not self.capabilities.supports(capability):
            logger.warning(f"Operation {operation} not supported by {self.name}")
            raise UnsupportedOperationError(
                f"Operation {operation} not supported by this provider", capability
            )

    def _validate_input(self, value: Any, name: str) -> None:
        if not isinstance(value, str) or not value.strip():
            raise InvalidInputError(f"Invalid {name}: must be a non-empty string")

    def _validate_list_options(self, options: ListFoldersOptions) -> None:
        for attr in ("parent_id", "search", "page_token"):
            value = getattr(options, attr)
            if value is not None and not isinstance(value, str):
                raise InvalidInputError(f"Invalid {attr}: must be a string")
        size = options.page_size
        if size is not None and (isinstance(size, bool) or not isinstance(size, int) or size <= 0):
            raise InvalidInputError("Invalid page_size: must be a positive integer")

    def _canonical_parent(self, parent_id: Optional[str]) -> Optional[str]:
        """
        The spelling of ``parent_id`` used in listing cache keys.

        Every root alias maps to None. Adapters whose backend accepts several
        spellings of one folder override this so they share a key.
        """
        if parent_id is None or parent_id in self.root_aliases:
            return None
        return parent_id

    def _listing_key(self, options: ListFoldersOptions) -> str:
        return replace(options, parent_id=self._canonical_parent(options.parent_id)).cache_key()

    def _invalidate_parent(self, parent_id: str) -> None:
        parent = ListFoldersOptions(parent_id=self._canonical_parent(parent_id))
        self._cache.delete_prefix(parent.parent_prefix())

    # ==================== Token Refresh ====================

    def _needs_refresh(self) -> bool:
        if not self.config.refresh_tokens or not self.token_info.refresh_token:
            return False
        return self.token_info.expires_within(TOKEN_REFRESH_BUFFER_SECONDS)

    async def _refresh_token_if_needed(self) -> None:
        if not self._needs_refresh():
            return
        # Concurrent callers await the same refresh.
        task = self._refresh_task
        if task is None:
            task = self._refresh_task = asyncio.ensure_future(self._perform_refresh())
        await asyncio.shield(task)

    async def _perform_refresh(self) -> None:
        try:
            token_info = await self._refresh_access_token()
        except Exception as e:
            logger.error(f"Failed to refresh access token for {self.name}: {e}")
            raise ReauthenticationRequiredError("Failed to refresh access token") from e
        else:
            self.token = token_info.access_token
            self.token_info = token_info
            logger.info(f"Refreshed access token for {self.name}")
            if self.on_token_refreshed is not None:
                await self._notify_token_refreshed(token_info)
        finally:
            self._refresh_task = None

    async def _notify_token_refreshed(self, token_info: TokenInfo) -> None:
        # The new token is already in use; a listener failure must not fail the call.
        try:
            await self.on_token_refreshed(token_info)
        except Exception as e:
            logger.error(f"Token refresh listener failed for {self.name}: {e}", exc_info=True)

    async def _refresh_access_token(self) -> TokenInfo:
        """Exchange the refresh token at the provider's token endpoint."""
        refresh_token = self.token_info.refresh_token
        if not refresh_token:
            raise ReauthenticationRequiredError("No refresh token available")

        client = await self._get_client()
        return await refresh_access_token(client, self.config, refresh_token)

    # ==================== HTTP ====================

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._request_timeout)
        return self._http_client

    async def _request(self, method: str, url: str, operation: str, **kwargs) -> dict:
        """Make an authenticated request and map failures onto the error taxonomy."""
        client = await self._get_client()

        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self.token}"

        self._consume_request_budget()
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise OperationFailedError(operation, "request timed out", kind="timeout", retryable=True) from e
        except httpx.HTTPError as e:
            raise OperationFailedError(operation, f"network error: {e}", retryable=True) from e

        self._raise_for_status(response, operation)

        if response.headers.get("content-type", "").startswith("application/json"):
            return response.json()
        return {}

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 401:
            raise ReauthenticationRequiredError(f"Access token for {self.name} expired or invalid")
        if status == 404:
            raise NotFoundError("Resource not found")
        if status == 429:
            raise RateLimitExceededError(
                self.name, retry_after=parse_retry_after(response.headers.get("Retry-After"))
            )
        if status == 403:
            raise OperationFailedError(operation, "access denied to resource")
        raise OperationFailedError(
            operation,
            f"API error {status}: {self._error_detail(response)}",
            retryable=status >= 500,
        )

    def _error_detail(self, response: httpx.Response) -> str:
        data = _json_body(response)
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("message") or "Unknown error"
        return data.get("error_summary") or data.get("message") or str(error or "Unknown error")

    # ==================== Lifecycle ====================

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
