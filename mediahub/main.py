"""
FastAPI application for mediahub.

Exposes cache diagnostics and maintenance, and the continue-watching list
with new-episode refresh. Every collaborator (storage, caches, episode
provider) is constructed once per application in the lifespan and kept
on `app.state`.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from mediahub import __version__
from mediahub.cache import TTLCache
from mediahub.config import Settings, settings as default_settings
from mediahub.continue_watching import (
    ContinueWatchingItem,
    ContinueWatchingStore,
    EpisodeProvider,
    MediaType,
    NewEpisodeService,
)
from mediahub.database import DatabaseEngine, DatabaseLifecycle, get_database_url
from mediahub.episodes import LastWatchedEpisode
from mediahub.middleware import RequestIdMiddleware, SecurityHeadersMiddleware
from mediahub.persistent_cache import PersistentCache
from mediahub.storage import InMemoryStorage, StorageError
from mediahub.tmdb import TMDBClient
from mediahub.utils import sanitize_for_log


def configure_logging(level_name: str) -> None:
    """Configure stdlib logging and structlog at the given level."""
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


# ============================================================================
# Pydantic Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    detail: str | None = Field(None, description="Additional error details")


class RemovedResponse(BaseModel):
    """Result of a bulk removal."""

    removed: int = Field(..., description="Number of entries removed")


class CacheStatsResponse(BaseModel):
    """Statistics for both cache tiers."""

    memory: dict[str, Any] = Field(default_factory=dict, description="In-memory cache statistics")
    persistent: dict[str, Any] = Field(default_factory=dict, description="Persistent cache statistics")


class TMDBContent(BaseModel):
    """A TMDB movie or TV result as returned by list and search endpoints."""

    model_config = ConfigDict(extra="allow")

    id: int
    title: str | None = None
    name: str | None = None
    poster_path: str | None = None
    overview: str | None = None
    vote_average: float | None = None
    release_date: str | None = None
    first_air_date: str | None = None


class AddItemRequest(BaseModel):
    """Request body for adding a title to the continue-watching list."""

    type: MediaType
    content: TMDBContent


class HealthResponse(BaseModel):
    """Response model for enhanced health check."""

    status: str = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: float = Field(..., description="Current Unix timestamp")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    cache: dict = Field(default_factory=dict, description="Cache statistics")
    database: dict = Field(default_factory=dict, description="Storage status")


# ============================================================================
# Lifespan Context Manager
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build collaborators on startup and release them on shutdown."""
    config: Settings = app.state.settings

    logger.info("=" * 60)
    logger.info("mediahub starting")
    logger.info("=" * 60)
    logger.info(f"  - Memory cache TTL: {config.memory_cache_ttl}s, max {config.memory_cache_maxsize} entries")
    logger.info(f"  - Persistent cache TTL: {config.persistent_cache_ttl}s, ceiling {config.persistent_cache_max_bytes} bytes")
    logger.info(f"  - Storage backend: {config.storage_backend}")

    engine: DatabaseEngine | None = None
    if config.storage_backend == "sqlite":
        engine = DatabaseEngine(
            get_database_url(config.database_path),
            quota_bytes=config.storage_quota_bytes,
        )
        storage = engine
    else:
        storage = InMemoryStorage(quota_bytes=config.storage_quota_bytes)

    memory_cache = TTLCache(
        default_ttl=config.memory_cache_ttl,
        maxsize=config.memory_cache_maxsize,
    )
    persistent_cache = PersistentCache(
        storage,
        ttl=config.persistent_cache_ttl,
        max_bytes=config.persistent_cache_max_bytes,
        prefix=config.persistent_cache_prefix,
    )

    tmdb_client: TMDBClient | None = None
    provider: EpisodeProvider | None = app.state.episode_provider
    if provider is None and config.tmdb_api_key:
        tmdb_client = TMDBClient(
            config.tmdb_api_key,
            persistent_cache,
            memory_cache=memory_cache,
            base_url=config.tmdb_base_url,
            timeout=config.tmdb_request_timeout,
        )
        provider = tmdb_client
    if provider is None:
        logger.warning("No TMDB API key configured, new-episode refresh is disabled")

    app.state.engine = engine
    app.state.memory_cache = memory_cache
    app.state.persistent_cache = persistent_cache
    app.state.continue_watching = ContinueWatchingStore(storage)
    app.state.new_episode_service = (
        NewEpisodeService(provider, max_concurrency=config.new_episode_concurrency)
        if provider is not None
        else None
    )

    async def sweep() -> int:
        memory_cache.expire()
        return await persistent_cache.clear_expired()

    lifecycle = DatabaseLifecycle(engine, sweep, cleanup_interval=config.cache_cleanup_interval)
    try:
        await lifecycle.startup()
    except Exception as e:
        logger.error(f"Failed to initialize storage: {e}")
        raise

    yield

    await lifecycle.shutdown()
    if tmdb_client is not None:
        await tmdb_client.close()


# ============================================================================
# Dependencies
# ============================================================================


def get_memory_cache(request: Request) -> TTLCache:
    return request.app.state.memory_cache


def get_persistent_cache(request: Request) -> PersistentCache:
    return request.app.state.persistent_cache


def get_store(request: Request) -> ContinueWatchingStore:
    return request.app.state.continue_watching


def get_new_episode_service(request: Request) -> NewEpisodeService:
    service = request.app.state.new_episode_service
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="New-episode refresh is unavailable: no episode provider configured",
        )
    return service


# ============================================================================
# Exception Handlers
# ============================================================================


async def storage_error_handler(request: Request, exc: StorageError) -> Response:
    """Storage failures outside the best-effort cache paths map to 503."""
    logger.error(f"Storage error: {exc}")
    error_response = ErrorResponse(
        error="storage_unavailable",
        message="The storage backend could not complete the request",
        detail=str(exc)[:200],
    )
    return Response(
        content=error_response.model_dump_json(),
        status_code=503,
        media_type="application/json",
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> Response:
    """Handle Pydantic validation errors with field-level detail."""
    errors = exc.errors()
    logger.warning(f"Validation error: {errors}")

    error_details = []
    for error in errors:
        loc = " -> ".join(str(x) for x in error["loc"])
        error_details.append(f"{loc}: {error['msg']}")

    error_response = ErrorResponse(
        error="validation_error",
        message="Invalid request parameters",
        detail="; ".join(error_details),
    )
    return Response(
        content=error_response.model_dump_json(),
        status_code=400,
        media_type="application/json",
    )


# ============================================================================
# Application Factory
# ============================================================================


def create_app(
    app_settings: Settings | None = None,
    episode_provider: EpisodeProvider | None = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        app_settings: Settings to use instead of the environment-loaded ones
        episode_provider: Episode source to use instead of a TMDB client
    """
    config = app_settings or default_settings
    configure_logging(config.log_level)

    app = FastAPI(
        title="mediahub",
        description="Response caching and new-episode detection for media browsing",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.episode_provider = episode_provider
    app.state.started_at = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)
    if config.enable_security_headers:
        app.add_middleware(SecurityHeadersMiddleware)

    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    """Attach all endpoints to the application."""

    @app.get("/", summary="Simple health check")
    async def root() -> dict[str, str]:
        return {"status": "healthy", "service": "mediahub", "version": __version__}

    @app.get("/health", response_model=HealthResponse, summary="Enhanced health check")
    async def health(request: Request) -> HealthResponse:
        """Service status, uptime, cache statistics and storage status."""
        state = request.app.state
        cache_stats = {
            "memory": state.memory_cache.get_stats(),
            "persistent": await state.persistent_cache.get_stats(),
        }
        if state.engine is not None:
            db_status = await state.engine.health_check()
        else:
            db_status = {"status": "healthy", "database": "memory"}

        overall_status = "healthy" if db_status.get("status") == "healthy" else "degraded"
        return HealthResponse(
            status=overall_status,
            service="mediahub",
            version=__version__,
            timestamp=time.time(),
            uptime_seconds=time.time() - state.started_at,
            cache=cache_stats,
            database=db_status,
        )

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    @app.get("/api/v1/cache/stats", response_model=CacheStatsResponse, summary="Cache statistics")
    async def cache_stats(
        memory_cache: TTLCache = Depends(get_memory_cache),
        persistent_cache: PersistentCache = Depends(get_persistent_cache),
    ) -> CacheStatsResponse:
        return CacheStatsResponse(
            memory=memory_cache.get_stats(),
            persistent=await persistent_cache.get_stats(),
        )

    @app.post("/api/v1/cache/clear-expired", response_model=RemovedResponse, summary="Sweep expired records")
    async def clear_expired(
        memory_cache: TTLCache = Depends(get_memory_cache),
        persistent_cache: PersistentCache = Depends(get_persistent_cache),
    ) -> RemovedResponse:
        removed = memory_cache.expire() + await persistent_cache.clear_expired()
        return RemovedResponse(removed=removed)

    @app.delete("/api/v1/cache", response_model=RemovedResponse, summary="Clear both cache tiers")
    async def clear_cache(
        memory_cache: TTLCache = Depends(get_memory_cache),
        persistent_cache: PersistentCache = Depends(get_persistent_cache),
    ) -> RemovedResponse:
        removed = memory_cache.clear() + await persistent_cache.clear_all()
        return RemovedResponse(removed=removed)

    @app.delete(
        "/api/v1/cache/subjects/{subject_id}",
        response_model=RemovedResponse,
        summary="Clear cached records for one video, channel or show",
    )
    async def clear_subject(
        subject_id: str,
        memory_cache: TTLCache = Depends(get_memory_cache),
        persistent_cache: PersistentCache = Depends(get_persistent_cache),
    ) -> RemovedResponse:
        removed = await persistent_cache.clear_for_subject(subject_id)
        # In-memory keys are not indexed by subject; drop the tier entirely
        memory_cache.clear()
        logger.info(f"Cleared subject {sanitize_for_log(subject_id)}: {removed} records")
        return RemovedResponse(removed=removed)

    # ------------------------------------------------------------------
    # Continue watching
    # ------------------------------------------------------------------

    @app.get(
        "/api/v1/continue-watching",
        response_model=list[ContinueWatchingItem],
        summary="List the continue-watching items",
    )
    async def list_continue_watching(
        store: ContinueWatchingStore = Depends(get_store),
    ) -> list[ContinueWatchingItem]:
        return await store.list_items()

    @app.post(
        "/api/v1/continue-watching",
        response_model=ContinueWatchingItem,
        status_code=201,
        summary="Add a movie or show to the continue-watching list",
    )
    async def add_continue_watching(
        body: AddItemRequest,
        store: ContinueWatchingStore = Depends(get_store),
    ) -> ContinueWatchingItem:
        return await store.add(body.content.model_dump(), body.type)

    @app.put(
        "/api/v1/continue-watching/{item_id}/episode",
        response_model=ContinueWatchingItem,
        responses={404: {"model": ErrorResponse, "description": "No such TV item"}},
        summary="Record the last watched episode of a show",
    )
    async def update_episode(
        item_id: str,
        marker: LastWatchedEpisode,
        store: ContinueWatchingStore = Depends(get_store),
    ) -> ContinueWatchingItem:
        item = await store.update_last_watched_episode(item_id, marker)
        if item is None:
            raise HTTPException(status_code=404, detail=f"TV item {item_id} not found")
        return item

    @app.delete(
        "/api/v1/continue-watching/{item_id}",
        status_code=204,
        responses={404: {"model": ErrorResponse, "description": "No such item"}},
        summary="Remove one item",
    )
    async def remove_continue_watching(
        item_id: str,
        store: ContinueWatchingStore = Depends(get_store),
    ) -> Response:
        if not await store.remove(item_id):
            raise HTTPException(status_code=404, detail=f"Item {item_id} not found")
        return Response(status_code=204)

    @app.delete(
        "/api/v1/continue-watching",
        response_model=RemovedResponse,
        summary="Clear the continue-watching history",
    )
    async def clear_continue_watching(
        store: ContinueWatchingStore = Depends(get_store),
    ) -> RemovedResponse:
        return RemovedResponse(removed=await store.clear())

    @app.post(
        "/api/v1/continue-watching/refresh",
        response_model=list[ContinueWatchingItem],
        responses={503: {"model": ErrorResponse, "description": "No episode provider configured"}},
        summary="Check every show for new episodes",
    )
    async def refresh_continue_watching(
        store: ContinueWatchingStore = Depends(get_store),
        service: NewEpisodeService = Depends(get_new_episode_service),
    ) -> list[ContinueWatchingItem]:
        """
        Re-check all items for newly aired episodes.

        Shows with new episodes are listed first; within each group the most
        recently watched come first. Results are merged into the list as
        stored when fetching finishes, so edits made meanwhile are kept.
        """
        processed = await service.process_batch(await store.list_items())
        # The list may have changed while episodes were fetched
        processed = await store.apply_new_episode_results(processed)
        with_new = sum(1 for item in processed if item.has_new_episodes)
        logger.info(f"Continue-watching refresh: {with_new}/{len(processed)} items have new episodes")
        return processed


app = create_app()
