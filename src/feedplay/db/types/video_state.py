"""Video lifecycle states and the transitions permitted between them."""

from enum import Enum


class VideoState(str, Enum):
    """Represent where a video is in its lifecycle.

    AVAILABLE videos are known but not selected. ACTIVE videos are selected
    for playback or sit in the watch queue. REMOVED videos were deleted by
    the user and are only retained so the removal can be undone and so
    re-fetches of the same feed do not resurrect them.
    """

    AVAILABLE = "AVAILABLE"
    ACTIVE = "ACTIVE"
    REMOVED = "REMOVED"

    def __str__(self) -> str:
        return self.value

    def can_transition_to(self, target: "VideoState") -> bool:
        """Return True if a direct transition to ``target`` is permitted.

        Leaving REMOVED is only possible through undo, which is not a
        direct transition.
        """
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[VideoState, frozenset[VideoState]] = {
    VideoState.AVAILABLE: frozenset({VideoState.ACTIVE, VideoState.REMOVED}),
    VideoState.ACTIVE: frozenset({VideoState.AVAILABLE, VideoState.REMOVED}),
    VideoState.REMOVED: frozenset(),
}
