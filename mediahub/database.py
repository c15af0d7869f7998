"""
Async SQLite storage backend using SQLModel.

This module provides the durable key-value store behind the persistent
cache and the continue-watching list, plus lifecycle management that
sweeps expired cache records in the background.
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Awaitable, Callable

from sqlalchemy import func
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel, delete, select, text

from mediahub.models import StorageItem, utcnow
from mediahub.storage import QuotaExceededError, StorageError, entry_size

logger = logging.getLogger(__name__)


def get_database_url(database_path: str | None = None) -> str:
    """
    Get the database URL, converting relative paths to absolute.

    Args:
        database_path: Path to database file (relative or absolute). If None, uses settings.

    Returns:
        SQLite database URL with absolute path
    """
    if database_path is None:
        from mediahub.config import settings
        database_path = settings.database_path

    if not Path(database_path).is_absolute():
        # Make path relative to the project directory
        project_dir = Path(__file__).parent.parent
        database_path = str(project_dir / database_path)
    return f"sqlite+aiosqlite:///{database_path}"


def _is_disk_full(exc: OperationalError) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return "database or disk is full" in message or "disk i/o error" in message


class DatabaseEngine:
    """
    Async SQLite key-value store.

    Implements the StorageBackend protocol on top of a single
    `storage_item` table. SQLAlchemy failures surface as StorageError so
    callers never need to know which backend they talk to.

    Args:
        database_url: SQLAlchemy database URL for async SQLite. If None, uses settings.
        echo: Whether to echo SQL statements (for debugging)
        quota_bytes: Optional limit on the summed key+value size; writes past
            it raise QuotaExceededError
    """

    def __init__(
        self,
        database_url: str | None = None,
        echo: bool = False,
        quota_bytes: int | None = None,
    ):
        self._engine = None
        self._session_factory = None
        self._database_url = database_url
        self._echo = echo
        self._quota_bytes = quota_bytes
        self._lock = threading.Lock()

    @property
    def database_url(self) -> str:
        """Get the database URL, resolving from settings if not set."""
        if self._database_url is None:
            self._database_url = get_database_url()
        return self._database_url

    @property
    def engine(self):
        """Get or create the async engine."""
        if self._engine is None:
            with self._lock:
                # Double-check after acquiring lock
                if self._engine is None:
                    self._engine = create_async_engine(
                        self.database_url,
                        echo=self._echo,
                        connect_args={"check_same_thread": False},
                        poolclass=NullPool,
                    )
                    logger.info(f"Created async database engine: {self.database_url}")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create the async session factory."""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._session_factory

    async def init_db(self) -> None:
        """Create all tables defined in SQLModel metadata."""
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Database tables initialized")

    async def close(self) -> None:
        """Close the database engine and cleanup resources."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine closed")

    # ------------------------------------------------------------------
    # StorageBackend protocol
    # ------------------------------------------------------------------

    async def get_item(self, key: str) -> str | None:
        try:
            async with self.session_factory() as session:
                item = await session.get(StorageItem, key)
                return item.value if item is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read {key!r}: {e}") from e

    async def set_item(self, key: str, value: str) -> None:
        """
        Insert or replace a value.

        Raises:
            QuotaExceededError: The write would exceed the configured quota,
                or SQLite reports the disk as full
            StorageError: Any other database failure
        """
        try:
            async with self.session_factory() as session:
                if self._quota_bytes is not None:
                    used = await self._used_bytes(session, exclude_key=key)
                    if used + entry_size(key, value) > self._quota_bytes:
                        raise QuotaExceededError(
                            f"Storage quota of {self._quota_bytes} bytes exceeded"
                        )

                item = await session.get(StorageItem, key)
                if item is None:
                    session.add(StorageItem(key=key, value=value))
                else:
                    item.value = value
                    item.updated_at = utcnow()
                await session.commit()
        except OperationalError as e:
            if _is_disk_full(e):
                raise QuotaExceededError(str(e)) from e
            raise StorageError(f"Failed to write {key!r}: {e}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write {key!r}: {e}") from e

    async def remove_item(self, key: str) -> None:
        try:
            async with self.session_factory() as session:
                await session.execute(delete(StorageItem).where(StorageItem.key == key))
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to remove {key!r}: {e}") from e

    async def keys(self) -> list[str]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(StorageItem.key))
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list keys: {e}") from e

    async def _used_bytes(self, session: AsyncSession, exclude_key: str | None = None) -> int:
        # SQLite length() counts characters, close enough for a quota estimate
        query = select(
            func.coalesce(
                func.sum(func.length(StorageItem.key) + func.length(StorageItem.value)), 0
            )
        )
        if exclude_key is not None:
            query = query.where(StorageItem.key != exclude_key)
        result = await session.execute(query)
        return int(result.scalar_one())

    async def health_check(self) -> dict[str, str]:
        """
        Check database health.

        Returns:
            Dictionary with status and message
        """
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return {"status": "healthy", "database": "connected"}
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "unhealthy", "database": str(e)}


class DatabaseLifecycle:
    """
    Lifecycle manager for the storage backend.

    Handles startup and shutdown, and runs a background task that calls
    `sweep` once immediately and then every `cleanup_interval` seconds.
    """

    def __init__(
        self,
        engine: DatabaseEngine | None,
        sweep: Callable[[], Awaitable[int]],
        cleanup_interval: float = 3600,
    ):
        """
        Initialize the lifecycle manager.

        Args:
            engine: Database engine to manage, or None for non-database backends
            sweep: Coroutine function removing expired records, returns count removed
            cleanup_interval: Seconds between sweeps
        """
        self._engine = engine
        self._sweep = sweep
        self._cleanup_interval = cleanup_interval
        self._cleanup_task: asyncio.Task | None = None
        self._shutdown_event: asyncio.Event | None = None

    async def startup(self) -> None:
        """Initialize the database and start the background sweep."""
        if self._engine is not None:
            logger.info("Initializing database...")
            await self._engine.init_db()
            logger.info("Database initialized successfully")
        await self.start_background_cleanup()

    async def shutdown(self) -> None:
        """Stop the background sweep and dispose the engine."""
        logger.info("Shutting down storage...")
        await self.stop_background_cleanup()
        if self._engine is not None:
            await self._engine.close()
        logger.info("Storage shutdown complete")

    async def start_background_cleanup(self) -> None:
        """Start the background cleanup task for expired cache records."""
        self._shutdown_event = asyncio.Event()
        shutdown_event = self._shutdown_event

        async def cleanup_loop():
            """Sweep expired records until shutdown is signaled."""
            logger.info("Started background cache cleanup task")
            try:
                while not shutdown_event.is_set():
                    try:
                        removed = await self._sweep()
                        if removed:
                            logger.info(f"Background sweep removed {removed} expired cache records")
                    except Exception as e:
                        logger.error(f"Error during cache cleanup: {e}")

                    try:
                        await asyncio.wait_for(
                            shutdown_event.wait(),
                            timeout=self._cleanup_interval,
                        )
                        break  # Shutdown was signaled
                    except asyncio.TimeoutError:
                        continue
            except asyncio.CancelledError:
                logger.debug("Background cache cleanup task cancelled")
                raise

        self._cleanup_task = asyncio.create_task(cleanup_loop())
        logger.info(f"Background cleanup task started (interval: {self._cleanup_interval}s)")

    async def stop_background_cleanup(self) -> None:
        """Stop the background cleanup task."""
        if self._cleanup_task is not None:
            if self._shutdown_event is not None:
                self._shutdown_event.set()
            try:
                await asyncio.wait_for(self._cleanup_task, timeout=5.0)
            except asyncio.TimeoutError:
                self._cleanup_task.cancel()
                logger.warning("Background cleanup task did not stop in time, cancelled")
            self._cleanup_task = None
            self._shutdown_event = None
            logger.info("Background cache cleanup task stopped")
