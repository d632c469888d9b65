"""
In-memory cache for external API lookups with per-category TTL and LRU eviction.

Every call to the item/monster/map database, the wiki search and the market
API goes through :meth:`ApiCache.get_or_fetch`, which keys the request by
category and parameters, serves fresh hits from memory, and falls back to an
expired copy when the upstream call fails.

The store is memory-only and process-local. A single shared instance,
:data:`api_cache`, is created on import; its periodic sweep runs as an asyncio
task started by the bot runtime once the event loop is up.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, TypeVar

from ragbot.util.logger import get_logger

if TYPE_CHECKING:
    from ragbot.configuration.app_configuration import CacheSettings

logger = get_logger("api_cache")

T = TypeVar("T")

DEFAULT_MAX_SIZE = 1000
DEFAULT_TTL_SECONDS = 5 * 60.0
DEFAULT_CLEANUP_INTERVAL_SECONDS = 60.0


class CacheCategory(StrEnum):
    """Logical namespaces for cached lookups."""

    WIKI_SEARCH = "WIKI_SEARCH"
    ITEM_SEARCH = "ITEM_SEARCH"
    MONSTER_SEARCH = "MONSTER_SEARCH"
    MAP_SEARCH = "MAP_SEARCH"
    MARKET_SEARCH = "MARKET_SEARCH"
    PRICE_HISTORY = "PRICE_HISTORY"
    SERVER_STATUS = "SERVER_STATUS"
    NEWS = "NEWS"


CATEGORY_TTLS: Dict[str, float] = {
    CacheCategory.WIKI_SEARCH: 30 * 60.0,
    CacheCategory.ITEM_SEARCH: 30 * 60.0,
    CacheCategory.MONSTER_SEARCH: 30 * 60.0,
    CacheCategory.MAP_SEARCH: 60 * 60.0,      # maps barely change
    CacheCategory.MARKET_SEARCH: 5 * 60.0,    # live listings
    CacheCategory.PRICE_HISTORY: 15 * 60.0,
    CacheCategory.SERVER_STATUS: 60.0,
    CacheCategory.NEWS: 30 * 60.0,
}
"""TTL in seconds per category. Categories missing here use the cache's default TTL."""


@dataclass(slots=True)
class CacheEntry:
    """A cached value plus its bookkeeping timestamps (store clock seconds)."""

    value: Any
    created_at: float
    expires_at: float
    last_access: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


def _canonical(params: Any) -> Any:
    """Normalize ``params`` so equivalent structures serialize identically."""
    if isinstance(params, Mapping):
        return {str(k): _canonical(v) for k, v in params.items()}
    if isinstance(params, (list, tuple)):
        return [_canonical(v) for v in params]
    if isinstance(params, (set, frozenset)):
        return sorted((_canonical(v) for v in params), key=repr)
    return params


def generate_key(category: str, params: Any) -> str:
    """Build the cache key for ``category`` and ``params``.

    String params are used verbatim. Mappings and sequences are serialized as
    compact JSON with keys sorted at every level, so two dicts with the same
    content but a different insertion order produce the same key.

    Args:
        category: Cache namespace, e.g. ``CacheCategory.MARKET_SEARCH``.
        params: Request parameters (string, mapping, sequence or scalar).

    Returns:
        str: ``"<category>:<serialized params>"``.
    """
    if isinstance(params, str):
        param_str = params
    elif isinstance(params, (Mapping, list, tuple, set, frozenset)):
        param_str = json.dumps(
            _canonical(params),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=str,
        )
    else:
        param_str = str(params)
    return f"{category}:{param_str}"


class ApiCache:
    """
    Bounded key/value store with TTL expiry and least-recently-used eviction.

    Entries are kept in an ``OrderedDict`` ordered by recency of access: a hit
    or a write moves the key to the end, so the eviction victim is always the
    first key. Reads of expired entries delete them lazily; :meth:`cleanup`
    sweeps the rest.

    All operations except :meth:`get_or_fetch` are synchronous and never
    raise. Under asyncio they run atomically with respect to each other.

    Attributes:
        max_size (int): Maximum number of resident entries.
        default_ttl (float): TTL in seconds used when none is given.
        cleanup_interval (float): Seconds between background sweeps.
        hits, misses, evictions, expirations (int): Statistics counters.
    """

    generate_key = staticmethod(generate_key)

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max(1, int(max_size))
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._cleanup_task: asyncio.Task | None = None

        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        # Presence only; expiry and counters are not touched.
        return key in self._entries

    # --------------------------
    # Low-level access
    # --------------------------
    def get(self, key: str) -> Any | None:
        """Return the cached value for ``key``, or ``None`` if absent or expired.

        A hit refreshes the entry's ``last_access``. An expired entry is
        removed and counted as both an expiration and a miss.
        """
        return self._lookup(key, drop_expired=True)

    def _lookup(self, key: str, *, drop_expired: bool) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        now = self._clock()
        if entry.is_expired(now):
            self.misses += 1
            if drop_expired:
                del self._entries[key]
                self.expirations += 1
                logger.debug("[API CACHE] Expired key: %s", key)
            return None

        entry.last_access = now
        self._entries.move_to_end(key)
        self.hits += 1
        return entry.value

    def get_stale(self, key: str) -> Any | None:
        """Return the stored value for ``key`` even if it has expired.

        Used only as the fallback when a fetch fails; does not affect stats.
        """
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Insert or overwrite ``key`` with a TTL (``default_ttl`` when ``None``)."""
        if ttl is None:
            ttl = self.default_ttl

        if key in self._entries:
            # Overwrite in place does not grow the store; re-insert at the recent end.
            del self._entries[key]
        else:
            self._evict_lru(len(self._entries) - self.max_size + 1)

        now = self._clock()
        self._entries[key] = CacheEntry(
            value=value,
            created_at=now,
            expires_at=now + ttl,
            last_access=now,
        )

    def _evict_lru(self, count: int = 1) -> int:
        """Drop up to ``count`` least-recently-accessed entries."""
        removed = 0
        while removed < count and self._entries:
            key, _ = self._entries.popitem(last=False)
            self.evictions += 1
            removed += 1
            logger.debug("[API CACHE] Evicted LRU key: %s", key)
        return removed

    # --------------------------
    # Management
    # --------------------------
    def invalidate(self, pattern: str | re.Pattern[str]) -> int:
        """Remove entries whose key matches ``pattern``.

        A plain string matches by key prefix; a compiled regular expression
        matches anywhere in the key (``pattern.search``).

        Returns:
            int: Number of entries removed.
        """
        if isinstance(pattern, re.Pattern):
            matches = [key for key in self._entries if pattern.search(key)]
        else:
            matches = [key for key in self._entries if key.startswith(pattern)]

        for key in matches:
            del self._entries[key]

        if matches:
            logger.debug("[API CACHE] Invalidated %d entries matching %r", len(matches), getattr(pattern, "pattern", pattern))
        return len(matches)

    def clear(self) -> int:
        """Remove every entry and return how many were dropped."""
        size = len(self._entries)
        self._entries.clear()
        logger.info("[API CACHE] Cache cleared (%d entries removed)", size)
        return size

    def cleanup(self) -> int:
        """Remove all expired entries and return how many were dropped."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            self.expirations += len(expired)
            logger.debug("[API CACHE] Cleanup removed %d expired entries", len(expired))
        return len(expired)

    def configure(
        self,
        *,
        max_size: int | None = None,
        default_ttl: float | None = None,
        cleanup_interval: float | None = None,
    ) -> None:
        """Update tunables in place, trimming the store if ``max_size`` shrinks.

        A running cleanup task picks up the new interval after its current sleep.
        """
        if max_size is not None:
            self.max_size = max(1, int(max_size))
            self._evict_lru(len(self._entries) - self.max_size)
        if default_ttl is not None:
            self.default_ttl = default_ttl
        if cleanup_interval is not None:
            self.cleanup_interval = cleanup_interval

    # --------------------------
    # Statistics
    # --------------------------
    def get_stats(self) -> Dict[str, Any]:
        """Return a snapshot of size and counters.

        ``hit_rate`` is a percentage string with one decimal, ``"0%"`` before
        the first read.
        """
        total = self.hits + self.misses
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": f"{self.hits / total * 100:.1f}%" if total > 0 else "0%",
            "evictions": self.evictions,
            "expirations": self.expirations,
        }

    def reset_stats(self) -> None:
        """Zero the counters without touching stored entries."""
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    # --------------------------
    # High-level wrapper
    # --------------------------
    def ttl_for(self, category: str) -> float:
        """Return the TTL for ``category``, falling back to ``default_ttl``."""
        return CATEGORY_TTLS.get(str(category), self.default_ttl)

    async def get_or_fetch(
        self,
        category: str,
        params: Any,
        fetch_fn: Callable[[], Awaitable[T]],
        *,
        use_stale_on_error: bool = True,
    ) -> T:
        """Return the cached value for ``category``/``params`` or fetch it.

        On a miss ``fetch_fn`` is awaited and a non-``None`` result is cached
        with the category TTL; ``None`` is never cached so "no result"
        lookups keep hitting the upstream. If ``fetch_fn`` raises and
        ``use_stale_on_error`` is set, an expired entry for the same key is
        returned instead. Otherwise the original exception propagates as is.

        The freshness check here keeps an expired entry in place (it still
        counts as a miss) so it can serve as that fallback; a successful
        fetch overwrites it and the sweep removes it otherwise.

        Concurrent misses for the same key each call ``fetch_fn``; the last
        write wins.

        Parameters
        ----------
        category:
            Cache namespace, also used to pick the TTL.
        params:
            Request parameters; see :func:`generate_key`.
        fetch_fn:
            Zero-argument coroutine function producing the value.
        use_stale_on_error:
            Serve an expired entry when the fetch fails.
        """
        key = generate_key(category, params)
        ttl = self.ttl_for(category)

        cached = self._lookup(key, drop_expired=False)
        if cached is not None:
            return cached

        try:
            value = await fetch_fn()
        except Exception as exc:
            if use_stale_on_error:
                stale = self.get_stale(key)
                if stale is not None:
                    logger.warning("[API CACHE] Using stale cache for %s due to fetch error: %s", category, exc)
                    return stale
            raise

        if value is not None:
            self.set(key, value, ttl)
        return value

    # --------------------------
    # Background cleanup
    # --------------------------
    @property
    def is_cleanup_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _run_cleanup_loop(self) -> None:
        """Infinite loop: sleep, sweep expired entries, repeat."""
        logger.info("[API CACHE] Starting periodic cleanup (interval=%.1fs)", self.cleanup_interval)
        try:
            while True:
                await asyncio.sleep(self.cleanup_interval)
                try:
                    self.cleanup()
                except Exception as exc:
                    logger.error("[API CACHE] Unexpected error during cleanup: %s", exc)
        except asyncio.CancelledError:
            logger.info("[API CACHE] Periodic cleanup cancelled")
            raise

    def start_cleanup(self) -> bool:
        """Start the background sweep on the running event loop if not already running.

        Returns:
            bool: True when a sweep task is running after the call, False when
            there is no running event loop to attach it to.
        """
        if self.is_cleanup_running:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[API CACHE] No running event loop; periodic cleanup not started")
            return False
        self._cleanup_task = loop.create_task(self._run_cleanup_loop(), name="api-cache-cleanup")
        return True

    def stop_cleanup(self) -> None:
        """Cancel the background sweep if it is running. Safe to call repeatedly."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is not None and not task.done():
            task.cancel()

    async def close(self) -> None:
        """Stop the background sweep and wait for it to finish."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                # Only the sweep's own cancellation is expected here.
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise


def configure_api_cache(settings: "CacheSettings", cache: ApiCache | None = None) -> ApiCache:
    """Apply :class:`CacheSettings` to ``cache`` (the shared instance by default)."""
    target = cache if cache is not None else api_cache
    target.configure(
        max_size=settings.max_size,
        default_ttl=settings.default_ttl_seconds,
        cleanup_interval=settings.cleanup_interval_seconds,
    )
    logger.info(
        "[API CACHE] Configured (max_size=%d, default_ttl=%.0fs, cleanup_interval=%.0fs)",
        target.max_size,
        target.default_ttl,
        target.cleanup_interval,
    )
    return target


# Shared process-wide cache instance
api_cache = ApiCache()
