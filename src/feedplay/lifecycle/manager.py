"""Video lifecycle transitions.

This module defines the LifecycleManager class, the single entry point for
user-driven state changes: activating, deactivating, removing and undoing
removals. The store enforces the state machine inside each transaction, so
a rejected transition never leaves a partial change behind.
"""

from datetime import timedelta
import logging

from ..db import VideoDatabase
from ..db.types import Video, VideoState

logger = logging.getLogger(__name__)


class LifecycleManager:
    """Apply lifecycle transitions to videos.

    Attributes:
        _video_db: Database manager for video records.
        _undo_window: How long a removal stays undoable; None means no limit.
    """

    def __init__(self, video_db: VideoDatabase, undo_window: timedelta | None = None):
        self._video_db = video_db
        self._undo_window = undo_window

    async def activate(self, video_id: int) -> Video:
        """Select a video for playback (AVAILABLE -> ACTIVE).

        Raises:
            VideoNotFoundError: If the video does not exist.
            InvalidTransitionError: If the video is removed.
            DatabaseOperationError: If the database operation fails.
        """
        return await self._video_db.set_state(video_id, VideoState.ACTIVE)

    async def deactivate(self, video_id: int) -> Video:
        """Take a video off the watch queue (ACTIVE -> AVAILABLE).

        Raises:
            VideoNotFoundError: If the video does not exist.
            InvalidTransitionError: If the video is removed.
            DatabaseOperationError: If the database operation fails.
        """
        return await self._video_db.set_state(video_id, VideoState.AVAILABLE)

    async def remove(self, video_id: int) -> Video:
        """Remove a video, recording it so the removal can be undone.

        Raises:
            VideoNotFoundError: If the video does not exist.
            InvalidTransitionError: If the video is already removed.
            DatabaseOperationError: If the database operation fails.
        """
        return await self._video_db.set_state(video_id, VideoState.REMOVED)

    async def undo_remove(self) -> list[Video]:
        """Reverse the most recent removal, restoring each video's prior state.

        Returns:
            The restored videos.

        Raises:
            NothingToUndoError: If there is no removal left to undo.
            DatabaseOperationError: If the database operation fails.
        """
        restored = await self._video_db.undo_last_removal(window=self._undo_window)
        logger.debug(
            "Undo applied.", extra={"video_ids": [video.id for video in restored]}
        )
        return restored
