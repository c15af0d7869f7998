"""
Tests for utility functions in mediahub/utils.py.
"""

from mediahub.utils import extract_video_id, format_megabytes, sanitize_for_log


class TestExtractVideoId:
    """Tests for extract_video_id function."""

    def test_extract_from_watch_url(self):
        assert extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ") == "dQw4w9WgXcQ"

    def test_extract_from_watch_url_with_params(self):
        assert extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=10") == "dQw4w9WgXcQ"

    def test_extract_from_youtu_be(self):
        assert extract_video_id("https://youtu.be/dQw4w9WgXcQ") == "dQw4w9WgXcQ"

    def test_extract_from_embed_and_shorts(self):
        assert extract_video_id("https://www.youtube.com/embed/dQw4w9WgXcQ") == "dQw4w9WgXcQ"
        assert extract_video_id("https://www.youtube.com/shorts/dQw4w9WgXcQ?feature=share") == "dQw4w9WgXcQ"

    def test_extract_raw_video_id(self):
        assert extract_video_id("dQw4w9WgXcQ") == "dQw4w9WgXcQ"

    def test_extract_invalid(self):
        assert extract_video_id("https://example.com/video") is None
        assert extract_video_id("short") is None
        assert extract_video_id("") is None


class TestFormatMegabytes:
    """Tests for format_megabytes function."""

    def test_zero(self):
        assert format_megabytes(0) == "0.00 MB"

    def test_whole_and_fractional(self):
        assert format_megabytes(50 * 1024 * 1024) == "50.00 MB"
        assert format_megabytes(1024 * 1024 // 2) == "0.50 MB"


class TestSanitizeForLog:
    """Tests for sanitize_for_log function."""

    def test_escapes_control_characters(self):
        assert sanitize_for_log("a\nb\rc\td") == "a\\nb\\rc\\td"

    def test_plain_text_unchanged(self):
        assert sanitize_for_log("1399") == "1399"
