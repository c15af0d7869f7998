"""
Configuration module for mediahub.

Uses pydantic-settings to load configuration from environment variables.
Cache windows, size ceilings and the storage backend can be tuned at
deploy time without code changes.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be set via either:
    - Prefixed: MEDIAHUB_<SETTING_NAME> (e.g., MEDIAHUB_STORAGE_BACKEND)
    - Unprefixed alias where one exists (e.g., HOST, PORT, LOG_LEVEL)
    - In a .env file

    Environment Variables:
        HOST: Server host (default: 0.0.0.0)
        PORT: Server port (default: 8000)
        LOG_LEVEL: Logging level (default: info)
        MEMORY_CACHE_TTL: In-memory cache TTL in seconds (default: 900)
        MEMORY_CACHE_MAXSIZE: Maximum in-memory entries (default: 1000)
        PERSISTENT_CACHE_TTL: Persistent cache TTL in seconds (default: 86400)
        PERSISTENT_CACHE_MAX_BYTES: Size ceiling for persisted records (default: 50 MiB)
        CACHE_CLEANUP_INTERVAL: Seconds between expired-record sweeps (default: 3600)
        STORAGE_BACKEND: "sqlite" or "memory" (default: sqlite)
        DATABASE_PATH: SQLite file path (default: mediahub.db)
        STORAGE_QUOTA_BYTES: Optional hard quota emulated by the backend
        TMDB_API_KEY: TMDB v3 API key; episode refresh is disabled without it
    """

    # ========== Server Configuration ==========

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="info", alias="LOG_LEVEL")

    # ========== In-memory Cache ==========

    memory_cache_ttl: float = 15 * 60  # 15 minutes
    memory_cache_maxsize: int = 1000

    # ========== Persistent Cache ==========

    persistent_cache_ttl: float = 24 * 60 * 60  # 24 hours
    persistent_cache_max_bytes: int = 50 * 1024 * 1024  # 50 MiB
    persistent_cache_prefix: str = "media_cache_"
    cache_cleanup_interval: float = 60 * 60  # hourly sweep

    # ========== Storage ==========

    storage_backend: Literal["sqlite", "memory"] = "sqlite"
    database_path: str = "mediahub.db"
    storage_quota_bytes: int | None = None

    # ========== TMDB ==========

    tmdb_api_key: str | None = None
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    tmdb_request_timeout: float = 10.0

    # Maximum shows checked concurrently during a continue-watching refresh
    new_episode_concurrency: int = 5

    # ========== Security Settings ==========

    enable_security_headers: bool = True
    cors_allow_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_prefix="MEDIAHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


# Global settings instance - loaded at startup with environment variables
settings = Settings()
