"""
Shared utility functions for mediahub.

This module provides small helpers used across the cache and API layers.
"""

import re


# Pre-compiled regex patterns for performance
YOUTUBE_PATTERN_COMPILED = re.compile(
    r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)([a-zA-Z0-9_-]{11})"
)
YOUTUBE_ID_PATTERN_COMPILED = re.compile(r"^([a-zA-Z0-9_-]{11})$")


def extract_video_id(url: str) -> str | None:
    """
    Extract video ID from a YouTube URL or return the input if it's a raw ID.

    Used to normalize cache subjects so that every URL form of the same
    video shares one cache record.

    Args:
        url: YouTube URL or video ID

    Returns:
        11-character YouTube video ID, or None if not found

    Examples:
        >>> extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=10")
        'dQw4w9WgXcQ'
        >>> extract_video_id("https://youtu.be/dQw4w9WgXcQ")
        'dQw4w9WgXcQ'
        >>> extract_video_id("dQw4w9WgXcQ")
        'dQw4w9WgXcQ'
    """
    match = YOUTUBE_PATTERN_COMPILED.search(url)
    if match:
        return match.group(1)

    match = YOUTUBE_ID_PATTERN_COMPILED.match(url)
    if match:
        return match.group(1)

    return None


def format_megabytes(size_bytes: int) -> str:
    """
    Render a byte count as megabytes with two decimals.

    Examples:
        >>> format_megabytes(0)
        '0.00 MB'
        >>> format_megabytes(5 * 1024 * 1024)
        '5.00 MB'
    """
    return f"{size_bytes / 1024 / 1024:.2f} MB"


def sanitize_for_log(input_str: str) -> str:
    """
    Sanitize user input for logging to prevent log injection attacks.

    Replaces newlines, carriage returns, and tabs with their escaped
    representations.
    """
    return input_str.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")
