"""Result types for playback."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PlaybackStatus(Enum):
    """How a playback session ended."""

    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    def __str__(self) -> str:
        return self.value


@dataclass
class PlaybackProgress:
    """What the player reported about the media while it ran.

    Every field stays None until the player reports it.

    Attributes:
        position_seconds: Last reported playback position.
        duration_seconds: Length of the media.
        media_title: Title the player found in the media.
    """

    position_seconds: float | None = None
    duration_seconds: float | None = None
    media_title: str | None = None

    def apply(self, name: str, value: Any) -> None:
        """Record a property change reported by the player.

        Unknown properties and values of the wrong type are ignored.
        """
        match name, value:
            case ("playback-time", int() | float()) if not isinstance(value, bool):
                self.position_seconds = float(value)
            case ("duration", int() | float()) if not isinstance(value, bool):
                self.duration_seconds = float(value)
            case ("media-title", str()) if value:
                self.media_title = value
            case _:
                pass

    def reached_end(self, tolerance_seconds: float) -> bool:
        """True if the last position is within ``tolerance_seconds`` of the end."""
        if self.position_seconds is None or self.duration_seconds is None:
            return False
        return self.position_seconds >= self.duration_seconds - tolerance_seconds


@dataclass(frozen=True)
class PlayerExit:
    """How the player process ended.

    Attributes:
        return_code: Exit status; negative values are the terminating signal.
        stopped: True if the player was stopped on request.
        progress: What the player reported before it exited.
    """

    return_code: int
    stopped: bool = False
    progress: PlaybackProgress = field(default_factory=PlaybackProgress)


@dataclass(frozen=True)
class PlaybackOutcome:
    """Result of playing one video.

    Attributes:
        video_id: The video that was played.
        status: Whether the player exited cleanly or was cancelled.
        return_code: Exit status of the player process.
        elapsed_seconds: Time the player was running.
        position_seconds: Where playback stopped, if the player reported it.
        finished: Playback reached the end of the video.
    """

    video_id: int
    status: PlaybackStatus
    return_code: int
    elapsed_seconds: float = 0.0
    position_seconds: float | None = None
    finished: bool = False
