"""Shared pytest fixtures for cache, detector and API tests."""

from datetime import date
from typing import Awaitable, Callable

import pytest
from fastapi.testclient import TestClient

from mediahub.config import Settings
from mediahub.episodes import Episode
from mediahub.main import create_app
from mediahub.persistent_cache import PersistentCache
from mediahub.storage import InMemoryStorage


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEpisodeProvider:
    """
    In-memory episode provider.

    `shows` maps show id to {season number: [Episode, ...]}; show ids in
    `failing` raise on every lookup.
    `on_fetch`, when set, is awaited once before the next season listing.
    """

    def __init__(self, shows: dict[int, dict[int, list[Episode]]] | None = None, failing: set[int] | None = None):
        self.shows = shows or {}
        self.failing = failing or set()
        self.calls: list[tuple[int, int | None]] = []
        self.on_fetch: Callable[[], Awaitable[None]] | None = None

    async def get_season_numbers(self, show_id: int) -> list[int]:
        self.calls.append((show_id, None))
        if self.on_fetch is not None:
            on_fetch, self.on_fetch = self.on_fetch, None
            await on_fetch()
        if show_id in self.failing:
            raise RuntimeError(f"upstream error for show {show_id}")
        return sorted(self.shows.get(show_id, {}))

    async def get_season_episodes(self, show_id: int, season_number: int) -> list[Episode]:
        self.calls.append((show_id, season_number))
        if show_id in self.failing:
            raise RuntimeError(f"upstream error for show {show_id}")
        return self.shows.get(show_id, {}).get(season_number, [])


def make_episode(season: int, episode: int, air_date: date | None) -> Episode:
    return Episode(
        season_number=season,
        episode_number=episode,
        air_date=air_date,
        name=f"S{season}E{episode}",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def persistent_cache(storage, clock):
    """Persistent cache over in-memory storage with a fake clock."""
    return PersistentCache(storage, ttl=24 * 60 * 60, max_bytes=50 * 1024 * 1024, clock=clock)


@pytest.fixture
def test_settings():
    return Settings(
        storage_backend="memory",
        tmdb_api_key=None,
        cache_cleanup_interval=3600,
    )


@pytest.fixture
def episode_provider():
    return FakeEpisodeProvider()


@pytest.fixture
def client(test_settings, episode_provider):
    """TestClient with in-memory storage and a fake episode provider."""
    app = create_app(test_settings, episode_provider=episode_provider)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def client_without_provider(test_settings):
    """TestClient without any episode provider configured."""
    app = create_app(test_settings)
    with TestClient(app) as test_client:
        yield test_client
