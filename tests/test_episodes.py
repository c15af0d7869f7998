"""
Tests for new-episode detection in mediahub/episodes.py.
"""

from datetime import date, timedelta

import pytest

from mediahub.episodes import (
    Episode,
    LastWatchedEpisode,
    detect_new_episodes,
    format_air_date,
    is_episode_in_future,
    parse_air_date,
)
from tests.conftest import make_episode

TODAY = date(2024, 6, 15)
YESTERDAY = TODAY - timedelta(days=1)
TOMORROW = TODAY + timedelta(days=1)


class TestDetectNewEpisodes:
    """Tests for detect_new_episodes."""

    def test_basic_case(self):
        marker = LastWatchedEpisode(season_number=1, episode_number=5)
        episodes = [
            make_episode(1, 5, YESTERDAY - timedelta(days=7)),
            make_episode(1, 6, YESTERDAY),
            make_episode(1, 7, TOMORROW),
        ]

        result = detect_new_episodes(marker, episodes, today=TODAY)

        assert result.has_new_episodes is True
        assert result.new_episodes_count == 1
        assert result.latest_new_episode.position == (1, 6)

    def test_no_marker(self):
        episodes = [make_episode(1, 1, YESTERDAY)]
        result = detect_new_episodes(None, episodes, today=TODAY)
        assert result.has_new_episodes is False
        assert result.new_episodes_count == 0
        assert result.latest_new_episode is None

    def test_empty_episode_list(self):
        marker = LastWatchedEpisode(season_number=1, episode_number=1)
        result = detect_new_episodes(marker, [], today=TODAY)
        assert result.has_new_episodes is False
        assert result.new_episodes_count == 0

    def test_season_rollover(self):
        marker = LastWatchedEpisode(season_number=1, episode_number=12)
        episodes = [make_episode(1, 12, YESTERDAY), make_episode(2, 1, YESTERDAY)]

        result = detect_new_episodes(marker, episodes, today=TODAY)

        assert result.has_new_episodes is True
        assert result.new_episodes_count == 1
        assert result.latest_new_episode.position == (2, 1)

    def test_earlier_season_with_higher_episode_not_new(self):
        marker = LastWatchedEpisode(season_number=2, episode_number=1)
        episodes = [make_episode(1, 10, YESTERDAY)]
        assert detect_new_episodes(marker, episodes, today=TODAY).has_new_episodes is False

    def test_episode_airing_today_counts(self):
        marker = LastWatchedEpisode(season_number=1, episode_number=1)
        episodes = [make_episode(1, 2, TODAY)]
        assert detect_new_episodes(marker, episodes, today=TODAY).new_episodes_count == 1

    def test_missing_air_date_ignored(self):
        marker = LastWatchedEpisode(season_number=1, episode_number=1)
        episodes = [make_episode(1, 2, None), make_episode(1, 3, None)]
        result = detect_new_episodes(marker, episodes, today=TODAY)
        assert result.has_new_episodes is False

    def test_latest_is_highest_position_regardless_of_input_order(self):
        marker = LastWatchedEpisode(season_number=1, episode_number=1)
        episodes = [
            make_episode(3, 1, YESTERDAY),
            make_episode(1, 4, YESTERDAY),
            make_episode(2, 9, YESTERDAY),
            make_episode(3, 2, TOMORROW),
        ]

        result = detect_new_episodes(marker, episodes, today=TODAY)

        assert result.new_episodes_count == 3
        assert result.latest_new_episode.position == (3, 1)

    def test_same_episode_as_marker_not_new(self):
        marker = LastWatchedEpisode(season_number=4, episode_number=2)
        episodes = [make_episode(4, 2, YESTERDAY)]
        assert detect_new_episodes(marker, episodes, today=TODAY).new_episodes_count == 0

    def test_accepts_any_iterable(self):
        marker = LastWatchedEpisode(season_number=1, episode_number=1)
        episodes = (make_episode(1, n, YESTERDAY) for n in range(1, 4))
        assert detect_new_episodes(marker, episodes, today=TODAY).new_episodes_count == 2


class TestEpisodeModels:
    """Tests for Episode parsing and date helpers."""

    def test_from_tmdb(self):
        episode = Episode.from_tmdb(
            {
                "air_date": "2024-01-15",
                "episode_number": 3,
                "season_number": 2,
                "name": "The One",
                "overview": "Things happen.",
                "vote_average": 8.1,
                "still_path": None,
            }
        )
        assert episode.position == (2, 3)
        assert episode.air_date == date(2024, 1, 15)
        assert episode.name == "The One"
        assert episode.vote_average == 8.1

    @pytest.mark.parametrize("raw", ["", None, "not-a-date"])
    def test_from_tmdb_without_valid_air_date(self, raw):
        episode = Episode.from_tmdb({"air_date": raw, "episode_number": 1, "season_number": 1})
        assert episode.air_date is None

    def test_marker_parses_air_date_string(self):
        marker = LastWatchedEpisode.model_validate(
            {"season_number": 1, "episode_number": 2, "air_date": "2024-03-01"}
        )
        assert marker.air_date == date(2024, 3, 1)

    def test_parse_air_date_accepts_datetime_strings(self):
        assert parse_air_date("2024-03-01T12:00:00Z") == date(2024, 3, 1)

    def test_is_episode_in_future(self):
        assert is_episode_in_future("2024-06-16", today=TODAY) is True
        assert is_episode_in_future("2024-06-15", today=TODAY) is False
        assert is_episode_in_future("", today=TODAY) is False
        assert is_episode_in_future(None, today=TODAY) is False

    def test_format_air_date(self):
        assert format_air_date("2024-01-15") == "Jan 15, 2024"
        assert format_air_date(date(2023, 12, 5)) == "Dec 5, 2023"
        assert format_air_date("") == ""
        assert format_air_date(None) == ""
        assert format_air_date("sometime") == "sometime"
