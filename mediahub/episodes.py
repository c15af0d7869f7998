"""
Episode models and new-episode detection.

`detect_new_episodes` compares a show's last watched episode against its
full episode list and reports aired episodes the user has not seen yet.
It is a pure function of its inputs.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict


def parse_air_date(value: Any) -> date | None:
    """Parse a `YYYY-MM-DD` air date; empty or malformed values give None."""
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


class Episode(BaseModel):
    """A single TV episode as supplied by the content provider."""

    model_config = ConfigDict(frozen=True)

    season_number: int
    episode_number: int
    air_date: date | None = None
    name: str = ""
    overview: str = ""
    vote_average: float = 0.0

    @property
    def position(self) -> tuple[int, int]:
        return (self.season_number, self.episode_number)

    @classmethod
    def from_tmdb(cls, data: dict[str, Any]) -> "Episode":
        """Build an Episode from a TMDB season `episodes[]` entry."""
        return cls(
            season_number=data["season_number"],
            episode_number=data["episode_number"],
            air_date=parse_air_date(data.get("air_date")),
            name=data.get("name") or "",
            overview=data.get("overview") or "",
            vote_average=data.get("vote_average") or 0.0,
        )


class LastWatchedEpisode(BaseModel):
    """Marker of the last episode a user watched for a show."""

    season_number: int
    episode_number: int
    air_date: date | None = None

    @property
    def position(self) -> tuple[int, int]:
        return (self.season_number, self.episode_number)


@dataclass(frozen=True)
class NewEpisodeResult:
    """Outcome of comparing a marker against a show's episode list."""

    has_new_episodes: bool = False
    new_episodes_count: int = 0
    latest_new_episode: Episode | None = None


def detect_new_episodes(
    last_watched: LastWatchedEpisode | None,
    episodes: Iterable[Episode],
    today: date | None = None,
) -> NewEpisodeResult:
    """
    Find aired episodes that come after the last watched one.

    An episode counts as new when it has an air date on or before `today`
    and sorts strictly after the marker by (season, episode). A later
    season always outranks the marker regardless of episode number.

    Args:
        last_watched: Marker for the show, or None if nothing was watched
        episodes: Every known episode of the show
        today: Reference date, defaults to the current local date

    Returns:
        NewEpisodeResult with the count and the latest new episode
    """
    episodes = list(episodes)
    if last_watched is None or not episodes:
        return NewEpisodeResult()

    today = today or date.today()
    new_episodes = [
        episode
        for episode in episodes
        if episode.air_date is not None
        and episode.air_date <= today
        and episode.position > last_watched.position
    ]
    if not new_episodes:
        return NewEpisodeResult()

    return NewEpisodeResult(
        has_new_episodes=True,
        new_episodes_count=len(new_episodes),
        latest_new_episode=max(new_episodes, key=lambda episode: episode.position),
    )


def is_episode_in_future(air_date: Any, today: date | None = None) -> bool:
    """True if the episode has an air date later than today."""
    parsed = parse_air_date(air_date)
    if parsed is None:
        return False
    return parsed > (today or date.today())


def format_air_date(value: Any) -> str:
    """
    Format an air date for display, e.g. "Jan 15, 2024".

    Unparseable strings are returned unchanged; empty values give "".
    """
    parsed = parse_air_date(value)
    if parsed is None:
        return value if isinstance(value, str) else ""
    return f"{parsed:%b} {parsed.day}, {parsed.year}"
