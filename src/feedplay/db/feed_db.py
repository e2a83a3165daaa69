"""Database management for feeds.

This module provides FeedDatabase, which owns every mutation of the feed
table, including feed removal and its cascade onto dependent videos.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
import logging

from sqlalchemy import delete, update
from sqlalchemy.dialects.sqlite import insert
from sqlmodel import col, select

from ..exceptions import (
    ConflictError,
    FeedNotFoundError,
    NotFoundError,
    ValidationError,
)
from ..feed_descriptor import FeedDescriptor
from .decorators import handle_db_errors, handle_feed_db_errors
from .removal_log import record_removal
from .sqlalchemy_core import SqlalchemyCore
from .types import Feed, Video, VideoState

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 1000


class FeedDatabase:
    """Manage all database operations for feeds.

    Attributes:
        _db: Core SQLAlchemy database manager.
        _undo_history_size: Number of removal operations retained for undo.
    """

    def __init__(self, db_core: SqlalchemyCore, undo_history_size: int = 10):
        self._db = db_core
        self._undo_history_size = undo_history_size

    # --- CRUD Operations ---

    @handle_db_errors("upsert feed")
    async def upsert_feed(self, descriptor: FeedDescriptor) -> int:
        """Insert a feed, or return the id of the feed with the same source.

        Two descriptors name the same feed when their kind and normalized
        locator match. An existing feed is returned untouched.

        Args:
            descriptor: What to follow.

        Returns:
            The id of the new or existing feed.

        Raises:
            ValidationError: If the descriptor is malformed.
            DatabaseOperationError: If the database operation fails.
        """
        valid = descriptor.validated()
        assert valid.label is not None
        log_params = {"kind": str(valid.kind), "descriptor": valid.locator}
        logger.debug("Attempting to upsert feed record.", extra=log_params)

        async with self._db.write_session() as session:
            existing = (
                await session.execute(
                    select(Feed).where(
                        col(Feed.kind) == valid.kind,
                        col(Feed.descriptor) == valid.locator,
                    )
                )
            ).scalar_one_or_none()
            if existing is not None:
                assert existing.id is not None
                logger.debug(
                    "Feed already exists.", extra={**log_params, "feed_id": existing.id}
                )
                return existing.id

            feed = Feed(kind=valid.kind, descriptor=valid.locator, label=valid.label)
            result = await session.execute(
                insert(Feed).values(**feed.model_dump_for_insert())
            )
            feed_id: int = self._db.as_cursor_result(result).inserted_primary_key[0]

        logger.info("Feed added.", extra={**log_params, "feed_id": feed_id})
        return feed_id

    @handle_feed_db_errors("get feed by ID")
    async def get_feed_by_id(self, feed_id: int) -> Feed:
        """Retrieve a specific feed by ID.

        Args:
            feed_id: The feed identifier.

        Returns:
            Feed object for the specified ID.

        Raises:
            FeedNotFoundError: If the feed is not found.
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            feed = await session.get(Feed, feed_id)
            if not feed:
                raise FeedNotFoundError("Feed not found.", feed_id=feed_id)
            return feed

    @handle_db_errors("get feeds")
    async def get_feeds(self, feed_ids: Sequence[int] | None = None) -> list[Feed]:
        """Get all feeds, or only those with the given ids, ordered by id.

        Unknown ids are ignored; callers that care compare the result
        against what they asked for.

        Args:
            feed_ids: Optional ids to restrict the result to.

        Returns:
            List of matching Feed objects.

        Raises:
            DatabaseOperationError: If the database query fails.
        """
        async with self._db.session() as session:
            stmt = select(Feed)
            if feed_ids is not None:
                stmt = stmt.where(col(Feed.id).in_(list(feed_ids)))
            result = await session.execute(stmt.order_by(col(Feed.id)))
            return list(result.scalars().all())

    @handle_feed_db_errors("set feed label")
    async def set_feed_label(self, feed_id: int, label: str) -> None:
        """Rename a feed and the display label carried by its videos.

        Args:
            feed_id: The feed identifier.
            label: The new label.

        Raises:
            ValidationError: If the label is blank.
            FeedNotFoundError: If the feed is not found.
            DatabaseOperationError: If the database operation fails.
        """
        label = label.strip()
        if not label:
            raise ValidationError("Feed label must not be empty.", field="label")

        log_params = {"feed_id": feed_id, "label": label}
        async with self._db.write_session() as session:
            result = await session.execute(
                update(Feed).where(col(Feed.id) == feed_id).values(label=label)
            )
            try:
                self._db.assert_exactly_one_row_affected(result, feed_id=feed_id)
            except NotFoundError as e:
                raise FeedNotFoundError("Feed not found.", feed_id=feed_id) from e
            await session.execute(
                update(Video).where(col(Video.feed_id) == feed_id).values(feed_label=label)
            )
        logger.debug("Feed label updated.", extra=log_params)

    # --- Sync bookkeeping ---

    @handle_feed_db_errors("mark sync success")
    async def mark_sync_success(
        self, feed_id: int, sync_time: datetime | None = None
    ) -> None:
        """Stamp last_synced_at and clear the failure counters.

        Args:
            feed_id: The feed identifier.
            sync_time: Time of the sync. If None, the current time is used.

        Raises:
            FeedNotFoundError: If the feed is not found.
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.write_session() as session:
            result = await session.execute(
                update(Feed)
                .where(col(Feed.id) == feed_id)
                .values(
                    last_synced_at=sync_time or datetime.now(UTC),
                    consecutive_failures=0,
                    last_error=None,
                )
            )
            try:
                self._db.assert_exactly_one_row_affected(result, feed_id=feed_id)
            except NotFoundError as e:
                raise FeedNotFoundError("Feed not found.", feed_id=feed_id) from e
        logger.debug("Feed sync success marked.", extra={"feed_id": feed_id})

    @handle_feed_db_errors("mark sync failure")
    async def mark_sync_failure(
        self, feed_id: int, error_message: str, sync_time: datetime | None = None
    ) -> None:
        """Record a failed sync and increment consecutive_failures.

        Args:
            feed_id: The feed identifier.
            error_message: Description of the failure.
            sync_time: Time of the sync. If None, the current time is used.

        Raises:
            FeedNotFoundError: If the feed is not found.
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.write_session() as session:
            result = await session.execute(
                update(Feed)
                .where(col(Feed.id) == feed_id)
                .values(
                    last_failed_sync_at=sync_time or datetime.now(UTC),
                    consecutive_failures=col(Feed.consecutive_failures) + 1,
                    last_error=error_message[:MAX_ERROR_MESSAGE_LENGTH],
                )
            )
            try:
                self._db.assert_exactly_one_row_affected(result, feed_id=feed_id)
            except NotFoundError as e:
                raise FeedNotFoundError("Feed not found.", feed_id=feed_id) from e
        logger.warning("Feed sync failure marked.", extra={"feed_id": feed_id})

    # --- Removal ---

    @handle_feed_db_errors("remove feed")
    async def remove_feed(
        self,
        feed_id: int,
        cascade: bool = False,
        removed_at: datetime | None = None,
    ) -> list[int]:
        """Delete a feed, optionally removing its live videos first.

        With ``cascade``, every non-removed video of the feed moves to
        REMOVED as one undoable removal operation, then the feed row is
        deleted. The videos keep their feed label; their feed reference is
        cleared by the database.

        Args:
            feed_id: The feed identifier.
            cascade: Remove dependent videos instead of refusing.
            removed_at: Time of the removal. If None, the current time is used.

        Returns:
            Ids of the videos moved to REMOVED.

        Raises:
            FeedNotFoundError: If the feed is not found.
            ConflictError: If live videos reference the feed and cascade is off.
            DatabaseOperationError: If the database operation fails.
        """
        removed_at = removed_at or datetime.now(UTC)
        log_params = {"feed_id": feed_id, "cascade": cascade}
        logger.debug("Attempting to remove feed.", extra=log_params)

        async with self._db.write_session() as session:
            if await session.get(Feed, feed_id) is None:
                raise FeedNotFoundError("Feed not found.", feed_id=feed_id)

            live = list(
                (
                    await session.execute(
                        select(Video)
                        .where(
                            col(Video.feed_id) == feed_id,
                            col(Video.state) != VideoState.REMOVED,
                        )
                        .order_by(col(Video.id))
                    )
                )
                .scalars()
                .all()
            )
            if live and not cascade:
                raise ConflictError(
                    f"Feed still has {len(live)} video(s); remove with cascade.",
                    feed_id=feed_id,
                )

            removed_ids: list[int] = []
            if live:
                items: list[tuple[int, VideoState]] = []
                for video in live:
                    assert video.id is not None
                    items.append((video.id, video.state))
                    removed_ids.append(video.id)
                await session.execute(
                    update(Video)
                    .where(col(Video.id).in_(removed_ids))
                    .values(state=VideoState.REMOVED, removed_at=removed_at)
                    .execution_options(synchronize_session=False)
                )
                await record_removal(
                    session, items, removed_at, self._undo_history_size
                )

            await session.execute(
                delete(Feed)
                .where(col(Feed.id) == feed_id)
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "Feed removed.", extra={**log_params, "removed_videos": len(removed_ids)}
        )
        return removed_ids
