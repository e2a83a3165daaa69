"""Database management for videos.

This module provides VideoDatabase, which implements candidate merging,
lifecycle state changes with their removal record, and undo.
"""

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
import logging

from sqlalchemy import func, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, select

from ..exceptions import (
    ConflictError,
    FeedNotFoundError,
    InvalidTransitionError,
    NothingToUndoError,
    ValidationError,
    VideoNotFoundError,
)
from ..feed_descriptor import validate_playable_reference
from .decorators import handle_db_errors, handle_feed_db_errors, handle_video_db_errors
from .removal_log import evict_expired, pop_latest_removal, record_removal
from .sqlalchemy_core import SqlalchemyCore
from .types import CandidateVideo, Feed, MergeSummary, Video, VideoState

logger = logging.getLogger(__name__)


class VideoDatabase:
    """Manage all database operations for videos.

    Attributes:
        _db: Core SQLAlchemy database manager.
        _undo_history_size: Number of removal operations retained for undo.
    """

    def __init__(self, db_core: SqlalchemyCore, undo_history_size: int = 10):
        """Create a new VideoDatabase instance.

        Args:
            db_core: The core SQLAlchemy database manager.
            undo_history_size: Number of removal operations retained for undo.
        """
        self._db = db_core
        self._undo_history_size = undo_history_size

    # --- Merge ---

    @handle_feed_db_errors("merge videos")
    async def merge_videos(
        self,
        feed_id: int,
        candidates: Sequence[CandidateVideo],
        discovered_at: datetime | None = None,
        reactivate_removed: bool = False,
    ) -> MergeSummary:
        """Merge a feed's candidates into the store as one transaction.

        Each candidate is matched on ``(feed_id, source_native_id)``:

        - unknown ids are inserted as AVAILABLE videos;
        - known AVAILABLE or ACTIVE videos keep their state and pick up a
          changed title (and a duration, if none was known);
        - known REMOVED videos stay removed, unless ``reactivate_removed``
          is set, in which case they return to AVAILABLE.

        A source id repeated within ``candidates`` counts as unchanged after
        its first occurrence.

        Args:
            feed_id: The feed the candidates came from.
            candidates: Candidates in the order the adapter produced them.
            discovered_at: Discovery time for new videos. If None, the
                current time is used.
            reactivate_removed: Restore rediscovered removed videos.

        Returns:
            Counts of what the merge did.

        Raises:
            FeedNotFoundError: If the feed does not exist.
            DatabaseOperationError: If the database operation fails.
        """
        discovered_at = discovered_at or datetime.now(UTC)
        log_params = {"feed_id": feed_id, "num_candidates": len(candidates)}
        logger.debug("Attempting to merge candidates.", extra=log_params)

        added = unchanged = reactivated = retitled = 0
        async with self._db.write_session() as session:
            feed = await session.get(Feed, feed_id)
            if feed is None:
                raise FeedNotFoundError("Feed not found.", feed_id=feed_id)

            known = await self._load_known_videos(
                session, feed_id, {c.source_native_id for c in candidates}
            )
            seen: set[str] = set()
            for candidate in candidates:
                if candidate.source_native_id in seen:
                    unchanged += 1
                    continue
                seen.add(candidate.source_native_id)

                existing = known.get(candidate.source_native_id)
                if existing is None:
                    video = Video(
                        feed_id=feed_id,
                        feed_label=feed.label,
                        source_native_id=candidate.source_native_id,
                        title=candidate.title,
                        playable_reference=candidate.playable_reference,
                        discovered_at=discovered_at,
                        published_at=candidate.published_at,
                        duration_seconds=candidate.duration_seconds,
                    )
                    await session.execute(
                        insert(Video).values(**video.model_dump_for_insert())
                    )
                    added += 1
                    continue

                values: dict[str, object] = {}
                if existing.title != candidate.title:
                    values["title"] = candidate.title
                    retitled += 1
                if (
                    existing.duration_seconds is None
                    and candidate.duration_seconds is not None
                ):
                    values["duration_seconds"] = candidate.duration_seconds
                if existing.state == VideoState.REMOVED:
                    if reactivate_removed:
                        values["state"] = VideoState.AVAILABLE
                        values["removed_at"] = None
                        reactivated += 1
                    else:
                        unchanged += 1
                else:
                    unchanged += 1
                if values:
                    await session.execute(
                        update(Video).where(col(Video.id) == existing.id).values(**values)
                    )

        summary = MergeSummary(
            added=added,
            unchanged=unchanged,
            reactivated=reactivated,
            retitled=retitled,
        )
        logger.debug(
            "Candidates merged.",
            extra={
                **log_params,
                "added": added,
                "unchanged": unchanged,
                "reactivated": reactivated,
                "retitled": retitled,
            },
        )
        return summary

    async def _load_known_videos(
        self, session: AsyncSession, feed_id: int, source_ids: set[str]
    ) -> dict[str, Video]:
        """Map each known source id of a feed to the row a merge should touch.

        A live row wins over removed ones; among removed rows the most
        recent wins.
        """
        if not source_ids:
            return {}
        result = await session.execute(
            select(Video)
            .where(
                col(Video.feed_id) == feed_id,
                col(Video.source_native_id).in_(source_ids),
            )
            .order_by(col(Video.id))
        )
        known: dict[str, Video] = {}
        for video in result.scalars().all():
            assert video.source_native_id is not None
            current = known.get(video.source_native_id)
            if current is None or current.state == VideoState.REMOVED:
                known[video.source_native_id] = video
        return known

    # --- CRUD Operations ---

    @handle_db_errors("add direct video")
    async def add_direct_video(
        self,
        playable_reference: str,
        title: str | None = None,
        state: VideoState = VideoState.ACTIVE,
        discovered_at: datetime | None = None,
    ) -> Video:
        """Insert a video that does not belong to any feed.

        Args:
            playable_reference: URL or absolute path of the video.
            title: Display title; the reference is used when absent.
            state: Initial state, AVAILABLE or ACTIVE.
            discovered_at: Time of addition. If None, the current time is used.

        Returns:
            The stored video.

        Raises:
            ValidationError: If the reference is malformed.
            ConflictError: If a live direct video already has this reference.
            DatabaseOperationError: If the database operation fails.
        """
        reference = validate_playable_reference(playable_reference)
        if state == VideoState.REMOVED:
            raise ValidationError(
                "A video cannot be added as removed.", field="state", value=str(state)
            )
        log_params = {"playable_reference": reference, "state": str(state)}
        logger.debug("Attempting to add direct video.", extra=log_params)

        video = Video(
            title=(title or "").strip() or reference,
            playable_reference=reference,
            state=state,
            discovered_at=discovered_at or datetime.now(UTC),
        )
        try:
            async with self._db.write_session() as session:
                duplicate = (
                    await session.execute(
                        select(col(Video.id)).where(
                            col(Video.feed_id).is_(None),
                            col(Video.playable_reference) == reference,
                            col(Video.state) != VideoState.REMOVED,
                        )
                    )
                ).scalar_one_or_none()
                if duplicate is not None:
                    raise ConflictError(
                        "A video with this reference already exists.",
                        video_id=duplicate,
                    )
                result = await session.execute(
                    insert(Video).values(**video.model_dump_for_insert())
                )
                video_id: int = self._db.as_cursor_result(result).inserted_primary_key[
                    0
                ]
                stored = await session.get(Video, video_id)
                assert stored is not None
        except IntegrityError as e:
            raise ConflictError(
                "A video with this reference already exists."
            ) from e

        logger.info("Direct video added.", extra={**log_params, "video_id": video_id})
        return stored

    @handle_video_db_errors("get video by ID")
    async def get_video_by_id(self, video_id: int) -> Video:
        """Retrieve a specific video by ID.

        Args:
            video_id: The video identifier.

        Returns:
            Video object for the specified ID, removed or not.

        Raises:
            VideoNotFoundError: If the video is not found.
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            video = await session.get(Video, video_id)
            if video is None:
                raise VideoNotFoundError("Video not found.", video_id=video_id)
            return video

    @handle_db_errors("list videos")
    async def list_videos(
        self, feed_id: int | None = None, state: VideoState | None = None
    ) -> list[Video]:
        """List videos, newest discoveries first.

        Videos discovered by the same merge keep the order their adapter
        produced them in.

        Args:
            feed_id: Restrict to one feed.
            state: Restrict to one state. If None, every video that is not
                REMOVED is listed.

        Returns:
            List of matching videos.

        Raises:
            DatabaseOperationError: If the database query fails.
        """
        async with self._db.session() as session:
            result = await session.execute(
                select(Video)
                .where(*self._video_filters(feed_id, state))
                .order_by(col(Video.discovered_at).desc(), col(Video.id).asc())
            )
            return list(result.scalars().all())

    @handle_db_errors("count videos")
    async def count_videos(
        self, feed_id: int | None = None, state: VideoState | None = None
    ) -> int:
        """Count videos using the same filters as :meth:`list_videos`.

        Raises:
            DatabaseOperationError: If the database query fails.
        """
        async with self._db.session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(Video)
                .where(*self._video_filters(feed_id, state))
            )
            return result.scalar_one()

    @staticmethod
    def _video_filters(
        feed_id: int | None, state: VideoState | None
    ) -> list[ColumnElement[bool]]:
        filters: list[ColumnElement[bool]] = []
        if feed_id is not None:
            filters.append(col(Video.feed_id) == feed_id)
        if state is None:
            filters.append(col(Video.state) != VideoState.REMOVED)
        else:
            filters.append(col(Video.state) == state)
        return filters

    # --- Lifecycle ---

    @handle_video_db_errors("set video state")
    async def set_state(
        self,
        video_id: int,
        new_state: VideoState,
        at: datetime | None = None,
    ) -> Video:
        """Move a video to ``new_state`` if the lifecycle permits it.

        Setting a live video to the state it is already in is a no-op.
        Moving to REMOVED stamps ``removed_at`` and appends an operation to
        the removal record in the same transaction.

        Args:
            video_id: The video identifier.
            new_state: The requested state.
            at: Time of the change. If None, the current time is used.

        Returns:
            The video after the change.

        Raises:
            VideoNotFoundError: If the video is not found.
            InvalidTransitionError: If the transition is not permitted.
            DatabaseOperationError: If the database operation fails.
        """
        at = at or datetime.now(UTC)
        log_params = {"video_id": video_id, "new_state": str(new_state)}
        logger.debug("Attempting to set video state.", extra=log_params)

        async with self._db.write_session() as session:
            video = await session.get(Video, video_id)
            if video is None:
                raise VideoNotFoundError("Video not found.", video_id=video_id)
            current = video.state

            if current == new_state and current != VideoState.REMOVED:
                logger.debug("Video already in requested state.", extra=log_params)
                return video
            if not current.can_transition_to(new_state):
                raise InvalidTransitionError(
                    f"Cannot move video from {current} to {new_state}.",
                    video_id=video_id,
                    from_state=str(current),
                    to_state=str(new_state),
                )

            video.state = new_state
            if new_state == VideoState.REMOVED:
                video.removed_at = at
                await record_removal(
                    session, [(video_id, current)], at, self._undo_history_size
                )
            await session.flush()
            await session.refresh(video)

        logger.info(
            "Video state changed.", extra={**log_params, "from_state": str(current)}
        )
        return video

    @handle_video_db_errors("record playback")
    async def record_playback(
        self,
        video_id: int,
        position_seconds: float | None = None,
        duration_seconds: float | None = None,
        finished: bool = False,
        played: bool = False,
        title: str | None = None,
        at: datetime | None = None,
    ) -> Video:
        """Store what a playback session learned about a video.

        A finished video has its resume position cleared and, if it is
        ACTIVE, goes back to AVAILABLE. Otherwise a known position is kept
        so the next playback resumes there. A reported title only replaces
        the display title while that is still the bare playable reference.

        Args:
            video_id: The video identifier.
            position_seconds: Last playback position reported by the player.
            duration_seconds: Length of the video reported by the player.
            finished: Playback reached the end of the video.
            played: Stamp ``last_played_at``.
            title: Title reported by the player.
            at: Time playback ended. If None, the current time is used.

        Returns:
            The video after the update.

        Raises:
            VideoNotFoundError: If the video is not found.
            DatabaseOperationError: If the database operation fails.
        """
        log_params = {
            "video_id": video_id,
            "position_seconds": position_seconds,
            "duration_seconds": duration_seconds,
            "finished": finished,
        }
        logger.debug("Attempting to record playback.", extra=log_params)

        async with self._db.write_session() as session:
            video = await session.get(Video, video_id)
            if video is None:
                raise VideoNotFoundError("Video not found.", video_id=video_id)

            if duration_seconds is not None:
                video.duration_seconds = duration_seconds
            if finished:
                video.position_seconds = None
                if video.state == VideoState.ACTIVE:
                    video.state = VideoState.AVAILABLE
            elif position_seconds is not None:
                video.position_seconds = position_seconds
            if played:
                video.last_played_at = at or datetime.now(UTC)
            if title and video.title == video.playable_reference:
                video.title = title
            await session.flush()
            await session.refresh(video)

        logger.debug("Playback recorded.", extra={**log_params, "state": str(video.state)})
        return video

    @handle_db_errors("undo last removal")
    async def undo_last_removal(
        self, now: datetime | None = None, window: timedelta | None = None
    ) -> list[Video]:
        """Reverse the most recent removal operation.

        Each video of the operation returns to the state it had before the
        removal. Operations whose videos have all left REMOVED in the
        meantime (or would collide with a live duplicate) are discarded and
        the next most recent one is tried.

        Args:
            now: Current time, used to expire old operations. If None, the
                current time is used.
            window: How long a removal stays undoable; None means no limit.

        Returns:
            The restored videos.

        Raises:
            NothingToUndoError: If no operation can be undone.
            DatabaseOperationError: If the database operation fails.
        """
        now = now or datetime.now(UTC)
        async with self._db.write_session() as session:
            await evict_expired(session, now, window)
            while (popped := await pop_latest_removal(session)) is not None:
                removal, items = popped
                restored: list[Video] = []
                for item in items:
                    video = await session.get(Video, item.video_id)
                    if video is None or video.state != VideoState.REMOVED:
                        logger.warning(
                            "Skipping video no longer removed.",
                            extra={"video_id": item.video_id, "removal_id": removal.id},
                        )
                        continue
                    if await self._has_live_duplicate(session, video):
                        logger.warning(
                            "Skipping video with a live duplicate.",
                            extra={"video_id": video.id, "removal_id": removal.id},
                        )
                        continue
                    video.state = item.prior_state
                    video.removed_at = None
                    restored.append(video)
                if restored:
                    await session.flush()
                    for video in restored:
                        await session.refresh(video)
                    logger.info(
                        "Removal undone.",
                        extra={
                            "removal_id": removal.id,
                            "video_ids": [v.id for v in restored],
                        },
                    )
                    return restored
        raise NothingToUndoError("There is no removal to undo.")

    @staticmethod
    async def _has_live_duplicate(session: AsyncSession, video: Video) -> bool:
        if video.is_direct:
            match_on = col(Video.playable_reference) == video.playable_reference
            owner = col(Video.feed_id).is_(None)
        else:
            match_on = col(Video.source_native_id) == video.source_native_id
            owner = col(Video.feed_id) == video.feed_id
        result = await session.execute(
            select(func.count())
            .select_from(Video)
            .where(
                owner,
                match_on,
                col(Video.state) != VideoState.REMOVED,
                col(Video.id) != video.id,
            )
        )
        return result.scalar_one() > 0
