"""
Caching for external API lookups.

- **api_cache.py**: Bounded in-memory store with per-category TTLs, LRU
  eviction, a background expiry sweep and a ``get_or_fetch`` wrapper that
  falls back to expired entries when the upstream call fails. Exposes the
  shared ``api_cache`` instance.
"""

from ragbot.cache.api_cache import (
    CATEGORY_TTLS,
    ApiCache,
    CacheCategory,
    CacheEntry,
    api_cache,
    configure_api_cache,
    generate_key,
)

__all__ = [
    "CATEGORY_TTLS",
    "ApiCache",
    "CacheCategory",
    "CacheEntry",
    "api_cache",
    "configure_api_cache",
    "generate_key",
]
