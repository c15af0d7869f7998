"""
Durable, size-bounded cache for upstream API responses.

Records live in a StorageBackend under a common key prefix and carry the
time they were stored. Stale records (older than the TTL) are dropped on
read and by a periodic sweep. When the summed record size would pass the
configured ceiling, the oldest records are evicted first. Cache writes
are best-effort: a failed write never turns a successful fetch into an
error for the caller.
"""

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, TypeVar
from urllib.parse import urlencode

from pydantic import BaseModel, ValidationError

from mediahub.storage import StorageBackend, StorageError, entry_size
from mediahub.utils import extract_video_id, format_megabytes

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_PREFIX = "media_cache_"
DEFAULT_TTL = 24 * 60 * 60  # 24 hours in seconds
DEFAULT_MAX_BYTES = 50 * 1024 * 1024  # 50 MiB


class ContentKind(str, Enum):
    """What a cached record holds; part of every cache key."""

    VIDEO_DETAILS = "videoDetails"
    RELATED_VIDEOS = "relatedVideos"
    SEARCH = "search"
    TRENDING = "trending"
    CHANNEL = "channel"
    CATEGORY = "category"
    QUERY = "query"
    TV_DETAILS = "tvDetails"
    SEASON_DETAILS = "seasonDetails"


class CacheRecord(BaseModel):
    """A persisted cache record."""

    payload: Any
    stored_at: float
    content_kind: ContentKind
    subject_id: str | None = None


def _format_param(name: str, value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise TypeError(
        f"Cache key parameter {name!r} must be a str, int, float or bool, "
        f"got {type(value).__name__}"
    )


def serialize_params(params: Mapping[str, Any]) -> str:
    """
    Serialize scalar request parameters in a stable order.

    Names are sorted, `None` values are skipped and the pairs are
    URL-encoded, so `{"a": 1, "b": 2}` and `{"b": 2, "a": 1}` serialize
    identically.

    Raises:
        TypeError: A parameter value is not a scalar
    """
    pairs = [
        (name, _format_param(name, value))
        for name, value in sorted(params.items())
        if value is not None
    ]
    return urlencode(pairs)


def build_cache_key(
    kind: ContentKind,
    subject_id: str | None = None,
    params: Mapping[str, Any] | None = None,
    prefix: str = CACHE_PREFIX,
) -> str:
    """
    Build the storage key for a cache record.

    Args:
        kind: Content kind of the record
        subject_id: Optional video/channel/show identifier
        params: Optional scalar request parameters
        prefix: Key prefix shared by all cache records

    Returns:
        Key of the form `<prefix><kind>[_<subject>][_<params>]`
    """
    key = f"{prefix}{ContentKind(kind).value}"
    if subject_id:
        key = f"{key}_{subject_id}"
    if params:
        serialized = serialize_params(params)
        if serialized:
            key = f"{key}_{serialized}"
    return key


class PersistentCache:
    """
    TTL cache persisted through a StorageBackend with a byte-size ceiling.

    Eviction is strictly by `stored_at` (oldest written first); reads do
    not refresh a record's position.

    Args:
        storage: Backend holding the serialized records
        ttl: Seconds a record stays fresh
        max_bytes: Ceiling on the summed size of all cache records
        prefix: Key prefix; keys without it are never touched
        clock: Wall-clock source in epoch seconds
    """

    def __init__(
        self,
        storage: StorageBackend,
        ttl: float = DEFAULT_TTL,
        max_bytes: int = DEFAULT_MAX_BYTES,
        prefix: str = CACHE_PREFIX,
        clock: Callable[[], float] = time.time,
    ):
        self._storage = storage
        self._ttl = ttl
        self._max_bytes = max_bytes
        self._prefix = prefix
        self._clock = clock

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def make_key(
        self,
        kind: ContentKind,
        subject_id: str | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> str:
        return build_cache_key(kind, subject_id, params, prefix=self._prefix)

    def _is_expired(self, record: CacheRecord) -> bool:
        return self._clock() - record.stored_at > self._ttl

    async def _cache_keys(self) -> list[str]:
        return [key for key in await self._storage.keys() if key.startswith(self._prefix)]

    async def _read(self, key: str) -> CacheRecord | None:
        try:
            raw = await self._storage.get_item(key)
        except StorageError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if raw is None:
            return None

        try:
            record = CacheRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Failed to parse cache entry {key}, removing: {e}")
            await self._remove_quietly(key)
            return None

        if self._is_expired(record):
            await self._remove_quietly(key)
            return None
        return record

    async def _remove_quietly(self, key: str) -> None:
        try:
            await self._storage.remove_item(key)
        except StorageError as e:
            logger.warning(f"Failed to remove cache entry {key}: {e}")

    async def _evict_oldest(self, incoming: int, exclude_key: str | None = None, force: bool = False) -> int:
        """
        Evict the oldest records until `incoming` more bytes fit under the ceiling.

        Args:
            incoming: Size of the record about to be written
            exclude_key: Key being overwritten; not counted and never evicted
            force: Evict at least one record even if the ceiling is met

        Returns:
            Number of records evicted
        """
        records: list[tuple[float, str, int]] = []
        total = 0
        for key in await self._cache_keys():
            if key == exclude_key:
                continue
            raw = await self._storage.get_item(key)
            if raw is None:
                continue
            try:
                stored_at = CacheRecord.model_validate_json(raw).stored_at
            except ValidationError:
                await self._storage.remove_item(key)
                continue
            size = entry_size(key, raw)
            records.append((stored_at, key, size))
            total += size

        records.sort()
        evicted = 0
        for _stored_at, key, size in records:
            if total + incoming <= self._max_bytes and not (force and evicted == 0):
                break
            await self._storage.remove_item(key)
            total -= size
            evicted += 1

        if evicted:
            logger.info(f"Evicted {evicted} cache records, {format_megabytes(total)} remaining")
        return evicted

    async def _store(self, key: str, record: CacheRecord) -> bool:
        """Write a record best-effort. Returns True if it was persisted."""
        try:
            value = record.model_dump_json()
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to serialize cache entry {key}: {e}")
            return False

        size = entry_size(key, value)
        if size > self._max_bytes:
            logger.warning(f"Cache entry {key} ({size} bytes) exceeds the cache ceiling, not stored")
            return False

        try:
            await self._evict_oldest(size, exclude_key=key)
            await self._storage.set_item(key, value)
            return True
        except StorageError as e:
            logger.warning(f"Failed to save cache entry {key}, cache might be full: {e}")

        try:
            await self._evict_oldest(size, exclude_key=key, force=True)
            await self._storage.set_item(key, value)
            return True
        except StorageError as e:
            logger.error(f"Failed to save cache entry {key} after clearing space: {e}")
            return False

    async def get_or_fetch(
        self,
        kind: ContentKind,
        fetcher: Callable[[], Awaitable[T]],
        *,
        subject_id: str | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> T:
        """
        Return the cached value for a request, fetching it on a miss.

        Args:
            kind: Content kind of the request
            fetcher: Zero-argument coroutine function producing a JSON-serializable value
            subject_id: Optional video/channel/show identifier
            params: Optional scalar request parameters

        Returns:
            The cached payload, or the freshly fetched value

        Raises:
            Whatever `fetcher` raises; failures are never cached
        """
        key = self.make_key(kind, subject_id, params)
        cached = await self._read(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached.payload

        logger.debug(f"Cache miss for {key}, fetching")
        data = await fetcher()
        record = CacheRecord(
            payload=data,
            stored_at=self._clock(),
            content_kind=kind,
            subject_id=subject_id,
        )
        await self._store(key, record)
        return data

    # Named lookups for the YouTube content kinds

    async def get_video_details(self, video: str, fetcher: Callable[[], Awaitable[T]]) -> T:
        """Video details keyed by video ID; full URLs are normalized to the ID."""
        return await self.get_or_fetch(
            ContentKind.VIDEO_DETAILS, fetcher, subject_id=extract_video_id(video) or video
        )

    async def get_related_videos(self, video: str, fetcher: Callable[[], Awaitable[T]]) -> T:
        return await self.get_or_fetch(
            ContentKind.RELATED_VIDEOS, fetcher, subject_id=extract_video_id(video) or video
        )

    async def get_search_results(
        self, query: str, params: Mapping[str, Any] | None, fetcher: Callable[[], Awaitable[T]]
    ) -> T:
        return await self.get_or_fetch(
            ContentKind.SEARCH, fetcher, params={"query": query, **(params or {})}
        )

    async def get_trending_videos(
        self, params: Mapping[str, Any] | None, fetcher: Callable[[], Awaitable[T]]
    ) -> T:
        return await self.get_or_fetch(ContentKind.TRENDING, fetcher, params=params)

    async def get_channel_videos(
        self, channel_id: str, params: Mapping[str, Any] | None, fetcher: Callable[[], Awaitable[T]]
    ) -> T:
        return await self.get_or_fetch(
            ContentKind.CHANNEL, fetcher, subject_id=channel_id, params=params
        )

    async def get_category_videos(
        self, category_id: str, params: Mapping[str, Any] | None, fetcher: Callable[[], Awaitable[T]]
    ) -> T:
        return await self.get_or_fetch(
            ContentKind.CATEGORY, fetcher, subject_id=category_id, params=params
        )

    async def get_query_videos(
        self, query: str, params: Mapping[str, Any] | None, fetcher: Callable[[], Awaitable[T]]
    ) -> T:
        return await self.get_or_fetch(ContentKind.QUERY, fetcher, subject_id=query, params=params)

    # Cache management

    async def clear_all(self) -> int:
        """Remove every cache record. Returns the number removed."""
        keys = await self._cache_keys()
        for key in keys:
            await self._storage.remove_item(key)
        logger.info(f"Cleared {len(keys)} cache entries")
        return len(keys)

    async def clear_expired(self) -> int:
        """Remove expired and unreadable records. Returns the number removed."""
        to_remove = []
        for key in await self._cache_keys():
            raw = await self._storage.get_item(key)
            if raw is None:
                continue
            try:
                record = CacheRecord.model_validate_json(raw)
            except ValidationError:
                to_remove.append(key)
                continue
            if self._is_expired(record):
                to_remove.append(key)

        for key in to_remove:
            await self._storage.remove_item(key)
        logger.info(f"Cleared {len(to_remove)} expired cache entries")
        return len(to_remove)

    async def clear_for_subject(self, subject_id: str) -> int:
        """Remove every record stored for a subject. Returns the number removed."""
        to_remove = []
        for key in await self._cache_keys():
            raw = await self._storage.get_item(key)
            if raw is None:
                continue
            try:
                record = CacheRecord.model_validate_json(raw)
            except ValidationError:
                continue
            if record.subject_id == subject_id:
                to_remove.append(key)

        for key in to_remove:
            await self._storage.remove_item(key)
        logger.info(f"Cleared {len(to_remove)} cache entries for subject {subject_id}")
        return len(to_remove)

    async def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics without modifying the store.

        Returns:
            Dictionary with total, expired (including unreadable) and
            subject-scoped entry counts plus the estimated size in bytes
        """
        total_entries = 0
        expired_entries = 0
        subject_entries = 0
        total_size = 0

        for key in await self._cache_keys():
            raw = await self._storage.get_item(key)
            if raw is None:
                continue
            total_entries += 1
            total_size += entry_size(key, raw)
            try:
                record = CacheRecord.model_validate_json(raw)
            except ValidationError:
                expired_entries += 1
                continue
            if record.subject_id:
                subject_entries += 1
            if self._is_expired(record):
                expired_entries += 1

        return {
            "total_entries": total_entries,
            "expired_entries": expired_entries,
            "subject_scoped_entries": subject_entries,
            "total_size_estimate": total_size,
            "total_size_mb": format_megabytes(total_size),
        }
