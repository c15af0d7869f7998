"""
Minimal TMDB client used as the episode provider.

Responses are cached in two tiers: the in-memory TTL cache answers
repeated lookups within a session, the persistent cache survives
restarts. Both tiers key records by show so that clearing a subject
drops every season of that show.
"""

import logging
from typing import Any, Awaitable, Callable, Mapping

import httpx

from mediahub.cache import TTLCache
from mediahub.episodes import Episode
from mediahub.persistent_cache import ContentKind, PersistentCache

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.themoviedb.org/3"


class TMDBError(Exception):
    """Raised when a TMDB request fails or returns an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TMDBClient:
    """
    Async TMDB v3 client.

    Args:
        api_key: TMDB v3 API key
        persistent_cache: Durable response cache
        memory_cache: Optional in-memory cache checked before the persistent one
        base_url: API root
        timeout: Per-request timeout in seconds
        http_client: Preconfigured client (tests pass one with a mock transport)
    """

    def __init__(
        self,
        api_key: str,
        persistent_cache: PersistentCache,
        memory_cache: TTLCache | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._persistent_cache = persistent_cache
        self._memory_cache = memory_cache
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def close(self) -> None:
        await self._http.aclose()

    async def _request(self, path: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        query = {"api_key": self._api_key, **(params or {})}
        try:
            response = await self._http.get(path, params=query)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TMDBError(
                f"TMDB request {path} failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise TMDBError(f"TMDB request {path} failed: {e}") from e
        try:
            return response.json()
        except ValueError as e:
            raise TMDBError(f"TMDB request {path} returned invalid JSON: {e}") from e

    async def _cached(
        self,
        kind: ContentKind,
        fetcher: Callable[[], Awaitable[dict[str, Any]]],
        subject_id: str,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        key = self._persistent_cache.make_key(kind, subject_id, params)
        if self._memory_cache is not None:
            cached = self._memory_cache.get(key)
            if cached is not None:
                return cached

        data = await self._persistent_cache.get_or_fetch(
            kind, fetcher, subject_id=subject_id, params=params
        )
        if self._memory_cache is not None:
            self._memory_cache.set(key, data)
        return data

    async def get_tv_details(self, tv_id: int) -> dict[str, Any]:
        return await self._cached(
            ContentKind.TV_DETAILS,
            lambda: self._request(f"/tv/{tv_id}"),
            subject_id=str(tv_id),
        )

    async def get_season_details(self, tv_id: int, season_number: int) -> dict[str, Any]:
        return await self._cached(
            ContentKind.SEASON_DETAILS,
            lambda: self._request(f"/tv/{tv_id}/season/{season_number}"),
            subject_id=str(tv_id),
            params={"season": season_number},
        )

    async def get_season_numbers(self, show_id: int) -> list[int]:
        details = await self.get_tv_details(show_id)
        return [season["season_number"] for season in details.get("seasons") or []]

    async def get_season_episodes(self, show_id: int, season_number: int) -> list[Episode]:
        details = await self.get_season_details(show_id, season_number)
        return [Episode.from_tmdb(episode) for episode in details.get("episodes") or []]
