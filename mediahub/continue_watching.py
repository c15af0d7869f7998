"""
Continue-watching list and batch new-episode processing.

The list is persisted as a single JSON document in the storage backend.
`NewEpisodeService.process_batch` annotates every TV item with whether
new episodes aired since the user's last watched episode, isolating
failures per item, and orders the list with those items first.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Iterable, Protocol

from pydantic import BaseModel, ValidationError

from mediahub.episodes import Episode, LastWatchedEpisode, detect_new_episodes
from mediahub.storage import StorageBackend

logger = logging.getLogger(__name__)

CONTINUE_WATCHING_KEY = "tmdb_continue_watching"


class MediaType(str, Enum):
    MOVIE = "movie"
    TV = "tv"


class ContinueWatchingItem(BaseModel):
    """A movie or show the user started watching."""

    id: str
    type: MediaType
    tmdb_id: int
    title: str
    thumbnail: str | None = None
    overview: str = ""
    rating: float = 0.0
    published_at: str | None = None
    last_watched_time: float
    last_watched_episode: LastWatchedEpisode | None = None
    has_new_episodes: bool = False
    new_episodes_count: int = 0
    latest_new_episode: Episode | None = None

    @classmethod
    def from_tmdb(cls, content: dict[str, Any], media_type: MediaType, watched_at: float) -> "ContinueWatchingItem":
        """Build an item from a TMDB movie or TV result."""
        title = content.get("title") or content.get("name") or ""
        published_at = content.get("release_date") or content.get("first_air_date")
        return cls(
            id=f"{media_type.value}-{content['id']}",
            type=media_type,
            tmdb_id=content["id"],
            title=title,
            thumbnail=content.get("poster_path"),
            overview=content.get("overview") or "",
            rating=content.get("vote_average") or 0.0,
            published_at=published_at,
            last_watched_time=watched_at,
        )


class _ContinueWatchingDocument(BaseModel):
    items: list[ContinueWatchingItem] = []


class ContinueWatchingStore:
    """
    Persisted continue-watching list, most recently added first.

    Storage errors on write propagate to the caller; a corrupted document
    is logged and read as an empty list.
    """

    def __init__(self, storage: StorageBackend, clock: Callable[[], float] = time.time):
        self._storage = storage
        self._clock = clock
        # Serializes read-modify-write cycles on the single document
        self._lock = asyncio.Lock()

    async def list_items(self) -> list[ContinueWatchingItem]:
        raw = await self._storage.get_item(CONTINUE_WATCHING_KEY)
        if raw is None:
            return []
        try:
            return _ContinueWatchingDocument.model_validate_json(raw).items
        except ValidationError as e:
            logger.error(f"Error loading continue watching list: {e}")
            return []

    async def _save(self, items: list[ContinueWatchingItem]) -> None:
        document = _ContinueWatchingDocument(items=items)
        await self._storage.set_item(CONTINUE_WATCHING_KEY, document.model_dump_json())

    async def get(self, item_id: str) -> ContinueWatchingItem | None:
        for item in await self.list_items():
            if item.id == item_id:
                return item
        return None

    async def add(self, content: dict[str, Any], media_type: MediaType) -> ContinueWatchingItem:
        """Add a TMDB result to the front of the list, replacing any earlier entry."""
        item = ContinueWatchingItem.from_tmdb(content, media_type, self._clock())
        async with self._lock:
            items = [existing for existing in await self.list_items() if existing.id != item.id]
            items.insert(0, item)
            await self._save(items)
        return item

    async def remove(self, item_id: str) -> bool:
        async with self._lock:
            items = await self.list_items()
            remaining = [item for item in items if item.id != item_id]
            if len(remaining) == len(items):
                return False
            await self._save(remaining)
            return True

    async def clear(self) -> int:
        async with self._lock:
            items = await self.list_items()
            await self._save([])
            return len(items)

    async def touch(self, item_id: str) -> ContinueWatchingItem | None:
        """Mark an item as watched now."""
        async with self._lock:
            items = await self.list_items()
            for index, item in enumerate(items):
                if item.id == item_id:
                    items[index] = item.model_copy(update={"last_watched_time": self._clock()})
                    await self._save(items)
                    return items[index]
            return None

    async def update_last_watched_episode(
        self, item_id: str, marker: LastWatchedEpisode
    ) -> ContinueWatchingItem | None:
        """
        Record the episode a user just selected.

        Only TV items take a marker. Returns None if no such TV item exists.
        """
        async with self._lock:
            items = await self.list_items()
            for index, item in enumerate(items):
                if item.id == item_id and item.type == MediaType.TV:
                    items[index] = item.model_copy(
                        update={
                            "last_watched_episode": marker,
                            "last_watched_time": self._clock(),
                        }
                    )
                    await self._save(items)
                    return items[index]
            return None

    async def replace_all(self, items: Iterable[ContinueWatchingItem]) -> None:
        async with self._lock:
            await self._save(list(items))

    async def apply_new_episode_results(
        self, processed: Iterable[ContinueWatchingItem]
    ) -> list[ContinueWatchingItem]:
        """
        Merge refresh results into the list as currently stored.

        Only the new-episode fields are copied, matched by item id. Items
        removed since the refresh started stay removed, and items whose
        last watched episode changed in the meantime keep their stored
        state. Returns the saved list, sorted.
        """
        results = {item.id: item for item in processed}
        async with self._lock:
            merged = []
            for item in await self.list_items():
                result = results.get(item.id)
                if result is not None and result.last_watched_episode == item.last_watched_episode:
                    item = item.model_copy(
                        update={
                            "has_new_episodes": result.has_new_episodes,
                            "new_episodes_count": result.new_episodes_count,
                            "latest_new_episode": result.latest_new_episode,
                        }
                    )
                merged.append(item)
            merged = sort_continue_watching(merged)
            await self._save(merged)
            return merged


class EpisodeProvider(Protocol):
    """Source of a show's seasons and episodes."""

    async def get_season_numbers(self, show_id: int) -> list[int]: ...
    async def get_season_episodes(self, show_id: int, season_number: int) -> list[Episode]: ...


def sort_continue_watching(items: Iterable[ContinueWatchingItem]) -> list[ContinueWatchingItem]:
    """Items with new episodes first, each group by last watched time, newest first."""
    return sorted(items, key=lambda item: (not item.has_new_episodes, -item.last_watched_time))


def _without_new_episodes(item: ContinueWatchingItem) -> ContinueWatchingItem:
    return item.model_copy(
        update={"has_new_episodes": False, "new_episodes_count": 0, "latest_new_episode": None}
    )


class NewEpisodeService:
    """
    Annotate continue-watching items with new-episode information.

    Args:
        provider: Where season and episode lists come from
        max_concurrency: Maximum number of shows fetched at the same time
    """

    def __init__(self, provider: EpisodeProvider, max_concurrency: int = 5):
        self._provider = provider
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def fetch_all_episodes(self, show_id: int) -> list[Episode]:
        episodes: list[Episode] = []
        for season_number in await self._provider.get_season_numbers(show_id):
            episodes.extend(await self._provider.get_season_episodes(show_id, season_number))
        return episodes

    async def process_item(self, item: ContinueWatchingItem) -> ContinueWatchingItem:
        """
        Check one item for new episodes.

        Movies and shows without a last watched episode are returned with
        no new episodes and nothing is fetched. Provider errors propagate.
        """
        if item.type != MediaType.TV or item.last_watched_episode is None:
            return _without_new_episodes(item)

        async with self._semaphore:
            episodes = await self.fetch_all_episodes(item.tmdb_id)

        result = detect_new_episodes(item.last_watched_episode, episodes)
        return item.model_copy(
            update={
                "has_new_episodes": result.has_new_episodes,
                "new_episodes_count": result.new_episodes_count,
                "latest_new_episode": result.latest_new_episode,
            }
        )

    async def _process_isolated(self, item: ContinueWatchingItem) -> ContinueWatchingItem:
        try:
            return await self.process_item(item)
        except Exception as e:
            logger.error(f"Error checking for new episodes for {item.title!r}: {e}")
            return _without_new_episodes(item)

    async def process_batch(self, items: Iterable[ContinueWatchingItem]) -> list[ContinueWatchingItem]:
        """
        Process every item concurrently and return them sorted.

        A failure for one item marks only that item as having no new
        episodes; the rest of the batch is unaffected.
        """
        processed = await asyncio.gather(*(self._process_isolated(item) for item in items))
        return sort_continue_watching(processed)
