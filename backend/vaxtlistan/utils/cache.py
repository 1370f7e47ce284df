"""
In-memory caches for catalog data and import sessions.

- TTLCache: key/value cache with expiry and LRU eviction
- CatalogCache: load-once holder for catalog snapshots, with explicit
  invalidation; passed to the functions that need it instead of living in
  module state
"""

import asyncio
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Hashable, Optional

import structlog

logger = structlog.get_logger()


class TTLCache:
    """
    Time-To-Live cache with LRU eviction.

    Features:
    - TTL-based expiration (items expire after N seconds)
    - LRU eviction when max_size exceeded
    - Safe for concurrent coroutines
    - Automatic cleanup of expired items
    """

    def __init__(self, max_size: int = 1000, default_ttl: int = 3600):
        """
        Initialize TTL cache.

        Args:
            max_size: Maximum number of cached items
            default_ttl: Default time-to-live in seconds
        """
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._cache: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache if not expired.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        async with self._lock:
            if key not in self._cache:
                self._misses += 1
                return None

            value, expires_at = self._cache[key]

            if time.time() > expires_at:
                del self._cache[key]
                self._misses += 1
                return None

            self._cache.move_to_end(key)
            self._hits += 1
            return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        Set value in cache with TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time-to-live in seconds (uses default if None)
        """
        async with self._lock:
            expires_at = time.time() + (ttl or self.default_ttl)
            self._cache[key] = (value, expires_at)
            self._cache.move_to_end(key)

            while len(self._cache) > self.max_size:
                self._cache.popitem(last=False)

    async def delete(self, key: str) -> bool:
        """
        Delete key from cache.

        Args:
            key: Cache key

        Returns:
            True if key existed, False otherwise
        """
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def cleanup_expired(self) -> int:
        """
        Remove all expired items.

        Returns:
            Number of items removed
        """
        async with self._lock:
            now = time.time()
            expired_keys = [
                key for key, (_, expires_at) in self._cache.items() if now > expires_at
            ]

            for key in expired_keys:
                del self._cache[key]

            return len(expired_keys)

    @property
    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total_requests = self._hits + self._misses
        hit_rate = self._hits / total_requests if total_requests > 0 else 0

        return {
            "size": len(self._cache),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": hit_rate,
        }


class CatalogCache:
    """
    Load-once holder for catalog snapshots.

    The loader runs the first time a key is requested and again only after
    the snapshot expires (when a TTL is set) or invalidate() is called.
    Concurrent callers wait for the single in-flight load. A failed load
    caches nothing, so the next call retries.

    Usage:
        cache = CatalogCache(load_available_plants, ttl=300)
        plants = await cache.get(False)   # include_hidden=False
        cache.invalidate()
    """

    def __init__(
        self,
        loader: Callable[[Hashable], Awaitable[Any]],
        ttl: Optional[int] = None,
        name: str = "catalog",
    ):
        self._loader = loader
        self.ttl = ttl
        self.name = name
        self._snapshots: dict[Hashable, tuple[Any, float]] = {}
        self._lock = asyncio.Lock()
        self.load_count = 0

    def _is_fresh(self, loaded_at: float) -> bool:
        return self.ttl is None or time.time() - loaded_at <= self.ttl

    def is_loaded(self, key: Hashable = None) -> bool:
        snapshot = self._snapshots.get(key)
        return snapshot is not None and self._is_fresh(snapshot[1])

    async def get(self, key: Hashable = None) -> Any:
        """
        Return the snapshot for key, loading it if needed.

        Args:
            key: Loader argument identifying the snapshot

        Returns:
            Whatever the loader returned
        """
        async with self._lock:
            snapshot = self._snapshots.get(key)
            if snapshot is not None and self._is_fresh(snapshot[1]):
                return snapshot[0]

            value = await self._loader(key)
            self._snapshots[key] = (value, time.time())
            self.load_count += 1
            logger.info("catalog_cache_loaded", cache=self.name, key=key)
            return value

    def invalidate(self, key: Hashable = None, *, all_keys: bool = True) -> None:
        """
        Drop cached snapshots.

        Args:
            key: Snapshot to drop when all_keys is False
            all_keys: Drop every snapshot (default)
        """
        if all_keys:
            self._snapshots.clear()
        else:
            self._snapshots.pop(key, None)
        logger.info("catalog_cache_invalidated", cache=self.name, key=key, all_keys=all_keys)
