"""mediahub - caching and new-episode detection for a media aggregation front-end."""

__version__ = "0.1.0"
