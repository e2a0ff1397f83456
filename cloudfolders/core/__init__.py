"""Shared infrastructure: settings, rate limiting and result caching."""

from cloudfolders.core.config import CloudStorageSettings, get_settings
from cloudfolders.core.rate_limiter import RateLimiter
from cloudfolders.core.result_cache import CacheEntry, ResultCache

__all__ = [
    "CloudStorageSettings",
    "get_settings",
    "RateLimiter",
    "CacheEntry",
    "ResultCache",
]
