"""
In-memory TTL cache for API responses.

This module provides a process-wide cache with per-entry time-to-live,
used to avoid repeating identical upstream requests within a session.
Entries are dropped lazily once they go stale.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from cachetools import TLRUCache

logger = logging.getLogger(__name__)

DEFAULT_TTL = 15 * 60  # 15 minutes in seconds


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its storage and expiry timestamps."""

    key: str
    value: Any
    stored_at: float
    expires_at: float


def _entry_expiry(_key: str, entry: CacheEntry, _now: float) -> float:
    # TLRUCache drops an entry once now >= expiry; keep it through expires_at itself
    return math.nextafter(entry.expires_at, math.inf)


class TTLCache:
    """
    In-memory cache with a per-entry TTL.

    Backed by cachetools.TLRUCache so every entry carries its own expiry
    time; once `maxsize` entries are held the least recently used one is
    evicted. cachetools is not thread-safe, so all access goes through a
    single lock: `get` checks, reads and drops stale data in one step.

    Args:
        default_ttl: TTL in seconds used when `set` gets no explicit TTL
        maxsize: Maximum number of entries held at once
        timer: Clock returning seconds, monotonic by default
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        maxsize: int = 1000,
        timer: Callable[[], float] = time.monotonic,
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self._default_ttl = default_ttl
        self._timer = timer
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._cache: TLRUCache = TLRUCache(
            maxsize=maxsize,
            ttu=_entry_expiry,
            timer=timer,
        )

    @property
    def default_ttl(self) -> float:
        """Get the default TTL in seconds."""
        return self._default_ttl

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Store a value, replacing any existing entry for the key.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time-to-live in seconds (default TTL when None)
        """
        if ttl is None:
            ttl = self._default_ttl
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")

        with self._lock:
            now = self._timer()
            self._cache[key] = CacheEntry(key, value, now, now + ttl)
        logger.debug(f"Memory cache set for key: {key}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a cached value if present and not expired.

        Stale entries are removed as a side effect.
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                # Drops the stale entry for this key, if any
                self._cache.expire()
                self._misses += 1
                return default
            self._hits += 1
            return entry.value

    def has(self, key: str) -> bool:
        """Check for a fresh entry without returning it."""
        with self._lock:
            if key in self._cache:
                return True
            self._cache.expire()
            return False

    def delete(self, key: str) -> bool:
        """Remove an entry. Returns True if the key was stored."""
        with self._lock:
            found = self._cache.pop(key, None) is not None
            self._cache.expire()
            return found

    def clear(self) -> int:
        """Remove every entry and return how many were held."""
        with self._lock:
            size = len(self._cache)
            self._cache.clear()
        logger.info(f"Memory cache cleared: {size} entries removed")
        return size

    def expire(self) -> int:
        """Drop all stale entries. Returns the number removed."""
        with self._lock:
            return len(self._cache.expire())

    def get_info(self) -> list[dict[str, Any]]:
        """
        Snapshot of entry timestamps for debugging.

        Stale entries are reported once with `is_expired` set and then
        dropped.
        """
        with self._lock:
            now = self._timer()
            stale = [entry for _, entry in self._cache.expire(now)]
            fresh = [self._cache.get(key) for key in list(self._cache)]
        return [
            {
                "key": entry.key,
                "stored_at": entry.stored_at,
                "expires_at": entry.expires_at,
                "is_expired": now > entry.expires_at,
            }
            for entry in stale + fresh
            if entry is not None
        ]

    def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache size, hits, misses, and hit rate
        """
        with self._lock:
            self._cache.expire()
            size = len(self._cache)
        total = self._hits + self._misses
        hit_rate = self._hits / total if total > 0 else 0
        return {
            "size": size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": hit_rate,
        }


def make_key(prefix: str, *params: str | int) -> str:
    """Join a prefix and parameters into a `prefix:a:b` cache key."""
    return ":".join([prefix, *(str(p) for p in params)])


class YOUTUBE_CACHE_KEYS:
    """Cache keys for YouTube listings."""

    TRENDING = "youtube:trending"
    CHANNELS = "youtube:channels"
    RANDOM_VIDEOS = "youtube:random_videos"
    CATEGORY = "youtube:category"
    QUERY = "youtube:query"

    @staticmethod
    def search(query: str) -> str:
        return make_key("youtube:search", query)

    @staticmethod
    def channel_videos(channel_id: str) -> str:
        return make_key("youtube:channel_videos", channel_id)
