"""Command surface over the feed and video engine.

This module defines the Library class, the single object front ends talk
to. It wires the store, the synchronization engine, the lifecycle manager
and the playback coordinator together and exposes one coroutine per user
command.
"""

import asyncio
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
import logging
import time

import httpx

from .adapters import AdapterSelector
from .config import AppSettings
from .db import FeedDatabase, SqlalchemyCore, VideoDatabase, run_migrations
from .db.sqlalchemy_core import DB_FILE_NAME
from .db.types import Feed, FeedKind, Video, VideoState
from .exceptions import DatabaseOperationError
from .feed_descriptor import FeedDescriptor
from .lifecycle import LifecycleManager
from .logging_config import context_id_scope
from .playback import PlaybackCoordinator, PlaybackOutcome, Player
from .sync import RefreshSummary, SyncEngine

logger = logging.getLogger(__name__)


class Library:
    """Entry point for every user-visible command.

    Attributes:
        _feed_db: Database manager for feed records.
        _video_db: Database manager for video records.
        _sync: Fetches and merges feeds.
        _lifecycle: Applies lifecycle transitions.
        _playback: Plays videos.
    """

    def __init__(
        self,
        feed_db: FeedDatabase,
        video_db: VideoDatabase,
        sync_engine: SyncEngine,
        lifecycle: LifecycleManager,
        playback: PlaybackCoordinator,
    ):
        self._feed_db = feed_db
        self._video_db = video_db
        self._sync = sync_engine
        self._lifecycle = lifecycle
        self._playback = playback

    @classmethod
    def from_components(
        cls,
        settings: AppSettings,
        db_core: SqlalchemyCore,
        http_client: httpx.AsyncClient,
    ) -> "Library":
        """Build a Library from the application settings.

        Args:
            settings: Application settings.
            db_core: Database connection manager; the schema must be current.
            http_client: Client used by the feed adapters.

        Returns:
            A ready Library.
        """
        feed_db = FeedDatabase(db_core, undo_history_size=settings.undo_history_size)
        video_db = VideoDatabase(db_core, undo_history_size=settings.undo_history_size)
        lifecycle = LifecycleManager(video_db, undo_window=settings.undo_window)
        sync_engine = SyncEngine(
            feed_db=feed_db,
            video_db=video_db,
            adapters=AdapterSelector(http_client),
            fetch_timeout=settings.fetch_timeout,
            concurrency=settings.sync_concurrency,
            reactivate_removed=settings.reactivate_removed,
        )
        player = Player(
            binary=settings.player_binary,
            args=settings.player_args,
            terminate_grace=settings.player_terminate_grace,
            resume_flag=settings.player_resume_flag,
            ipc=settings.player_ipc,
        )
        playback = PlaybackCoordinator(
            video_db, lifecycle, player, end_tolerance=settings.end_tolerance
        )
        return cls(feed_db, video_db, sync_engine, lifecycle, playback)

    @classmethod
    @asynccontextmanager
    async def open(cls, settings: AppSettings) -> AsyncGenerator["Library"]:
        """Open the library stored under ``settings.data_dir``.

        Creates the data directory and migrates the database on first use.
        Connections are closed when the block exits.

        Args:
            settings: Application settings.

        Yields:
            A ready Library.

        Raises:
            DatabaseOperationError: If the data directory cannot be created.
        """
        try:
            settings.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DatabaseOperationError("Failed to create data directory.") from e

        db_path = settings.data_dir / DB_FILE_NAME
        logger.debug("Opening library.", extra={"db_path": str(db_path)})
        await asyncio.to_thread(run_migrations, db_path)

        db_core = SqlalchemyCore(db_path)
        try:
            async with httpx.AsyncClient(
                timeout=settings.fetch_timeout,
                headers={"User-Agent": settings.user_agent},
            ) as http_client:
                yield cls.from_components(settings, db_core, http_client)
        finally:
            await db_core.close()

    # --- Feeds ---

    async def add_feed(
        self, kind: FeedKind, locator: str, label: str | None = None
    ) -> Feed:
        """Start following a feed; adding a known feed returns it unchanged.

        Raises:
            ValidationError: If the locator is malformed for the kind.
            DatabaseOperationError: If the database operation fails.
        """
        feed_id = await self._feed_db.upsert_feed(
            FeedDescriptor(kind=kind, locator=locator, label=label)
        )
        return await self._feed_db.get_feed_by_id(feed_id)

    async def list_feeds(self) -> list[Feed]:
        """Return all feeds ordered by id."""
        return await self._feed_db.get_feeds()

    async def rename_feed(self, feed_id: int, label: str) -> Feed:
        """Change a feed's display label.

        Raises:
            ValidationError: If the label is blank.
            FeedNotFoundError: If the feed does not exist.
        """
        await self._feed_db.set_feed_label(feed_id, label)
        return await self._feed_db.get_feed_by_id(feed_id)

    async def remove_feed(self, feed_id: int, cascade: bool = False) -> list[int]:
        """Stop following a feed.

        Returns:
            Ids of the videos removed along with the feed.

        Raises:
            FeedNotFoundError: If the feed does not exist.
            ConflictError: If the feed still has videos and cascade is off.
        """
        return await self._feed_db.remove_feed(feed_id, cascade=cascade)

    async def refresh(self, feed_ids: Sequence[int] | None = None) -> RefreshSummary:
        """Synchronize all feeds, or the given ones.

        Raises:
            FeedNotFoundError: If a requested feed does not exist.
        """
        with context_id_scope(f"refresh-{int(time.time())}"):
            return await self._sync.refresh(feed_ids)

    # --- Videos ---

    async def add_video(self, reference: str, title: str | None = None) -> Video:
        """Add a video by URL or path and put it on the active list.

        Raises:
            ValidationError: If the reference is malformed.
            ConflictError: If the video was already added.
        """
        return await self._video_db.add_direct_video(
            reference, title=title, state=VideoState.ACTIVE
        )

    async def list_videos(
        self, state: VideoState | None = None, feed_id: int | None = None
    ) -> list[Video]:
        """List videos, newest first; removed videos only when asked for.

        Raises:
            FeedNotFoundError: If ``feed_id`` names a feed that does not exist.
        """
        if feed_id is not None:
            await self._feed_db.get_feed_by_id(feed_id)
        return await self._video_db.list_videos(feed_id=feed_id, state=state)

    async def activate(self, video_id: int) -> Video:
        """Put a video on the active list."""
        return await self._lifecycle.activate(video_id)

    async def deactivate(self, video_id: int) -> Video:
        """Take a video off the active list."""
        return await self._lifecycle.deactivate(video_id)

    async def remove(self, video_id: int) -> Video:
        """Remove a video; the removal can be undone."""
        return await self._lifecycle.remove(video_id)

    async def undo_remove(self) -> list[Video]:
        """Undo the most recent removal.

        Raises:
            NothingToUndoError: If there is nothing left to undo.
        """
        return await self._lifecycle.undo_remove()

    async def play(
        self, video_id: int, cancel: asyncio.Event | None = None
    ) -> PlaybackOutcome:
        """Play a video with the configured player."""
        with context_id_scope(f"play-{video_id}-{int(time.time())}"):
            return await self._playback.play(video_id, cancel)
