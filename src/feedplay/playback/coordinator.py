"""Playback of a single video through the external player.

This module defines the PlaybackCoordinator class, which ties a video's
lifecycle to a player session: the video is activated before the player
starts and resumes from its saved position. Once the player exits, the
position it reported is saved, or, if playback reached the end, the video
goes back to AVAILABLE. ``last_played_at`` is stamped after a clean exit.
"""

import asyncio
import logging
import time

from ..db import VideoDatabase
from ..db.types import VideoState
from ..exceptions import PlayerLaunchError, PlayerRuntimeError
from ..lifecycle import LifecycleManager
from .player import Player, is_cancel_exit
from .types import PlaybackOutcome, PlaybackStatus

logger = logging.getLogger(__name__)

END_TOLERANCE_SECONDS = 1.0


class PlaybackCoordinator:
    """Play videos and keep their lifecycle state consistent.

    Attributes:
        _video_db: Database manager for video records.
        _lifecycle: Applies the activation that precedes playback.
        _player: The external player wrapper.
        _end_tolerance: Seconds before the end that count as having
            finished the video.
    """

    def __init__(
        self,
        video_db: VideoDatabase,
        lifecycle: LifecycleManager,
        player: Player,
        end_tolerance: float = END_TOLERANCE_SECONDS,
    ):
        self._video_db = video_db
        self._lifecycle = lifecycle
        self._player = player
        self._end_tolerance = end_tolerance

    async def play(
        self, video_id: int, cancel: asyncio.Event | None = None
    ) -> PlaybackOutcome:
        """Activate a video and play it until the player exits.

        If the player cannot be started, the video goes back to the state it
        was in. Once the player has run, whatever progress it reported is
        saved, even when it was cancelled or failed. A video played to the
        end goes back to AVAILABLE with its resume position cleared; any
        other video stays ACTIVE.

        Args:
            video_id: The video to play.
            cancel: Event that, once set, stops the player.

        Returns:
            How playback ended.

        Raises:
            VideoNotFoundError: If the video does not exist.
            InvalidTransitionError: If the video is removed.
            PlayerLaunchError: If the player cannot be started.
            PlayerRuntimeError: If the player exits with an error.
            DatabaseOperationError: If the database operation fails.
        """
        prior_state = (await self._video_db.get_video_by_id(video_id)).state
        video = await self._lifecycle.activate(video_id)
        log_params = {
            "video_id": video_id,
            "playable_reference": video.playable_reference,
            "player_binary": self._player.binary,
        }
        logger.info(
            "Starting playback.",
            extra={**log_params, "start_position": video.position_seconds},
        )

        started_at = time.monotonic()
        try:
            player_exit = await self._player.play(
                video.playable_reference, cancel, start_position=video.position_seconds
            )
        except PlayerLaunchError as e:
            if prior_state == VideoState.AVAILABLE:
                await self._lifecycle.deactivate(video_id)
            raise PlayerLaunchError(
                str(e), video_id=video_id, player_binary=e.player_binary
            ) from e
        elapsed = time.monotonic() - started_at

        return_code = player_exit.return_code
        progress = player_exit.progress
        cancelled = player_exit.stopped or is_cancel_exit(return_code)
        failed = not cancelled and return_code != 0
        finished = progress.reached_end(self._end_tolerance)

        await self._video_db.record_playback(
            video_id,
            position_seconds=progress.position_seconds,
            duration_seconds=progress.duration_seconds,
            finished=finished,
            played=finished or not (cancelled or failed),
            title=progress.media_title,
        )
        log_params |= {
            "return_code": return_code,
            "position_seconds": progress.position_seconds,
            "finished": finished,
        }

        if failed:
            raise PlayerRuntimeError(
                f"Player exited with status {return_code}.",
                video_id=video_id,
                player_binary=self._player.binary,
                return_code=return_code,
            )

        status = PlaybackStatus.CANCELLED if cancelled else PlaybackStatus.COMPLETED
        logger.info(
            "Playback cancelled." if cancelled else "Playback completed.",
            extra={**log_params, "elapsed_seconds": round(elapsed, 1)},
        )
        return PlaybackOutcome(
            video_id=video_id,
            status=status,
            return_code=return_code,
            elapsed_seconds=elapsed,
            position_seconds=progress.position_seconds,
            finished=finished,
        )
