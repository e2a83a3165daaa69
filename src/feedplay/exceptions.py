"""Custom exceptions for the feedplay application.

This module defines all custom exception classes used throughout the
application, organized by functional area and providing structured
error information for better debugging and error handling.
"""

from enum import Enum


class FeedplayError(Exception):
    """Base class for application-specific errors."""


class ConfigLoadError(FeedplayError):
    """Raised when a configuration file fails to load.

    Attributes:
        config_file: Path to the configuration file that failed to load.
    """

    def __init__(
        self,
        message: str,
        config_file: str | None = None,
    ):
        super().__init__(message)
        self.config_file = config_file


# --- Store and lifecycle errors ---


class ValidationError(FeedplayError):
    """Raised when input is malformed. Never accompanied by a state change.

    Attributes:
        field: The name of the offending input, if known.
        value: The offending value, if known.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: str | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.value = value


class NotFoundError(FeedplayError):
    """Raised when a referenced entity does not exist."""


class FeedNotFoundError(NotFoundError):
    """Raised when a specific feed is not found when expected.

    Attributes:
        feed_id: The feed identifier associated with the error.
    """

    def __init__(self, message: str, feed_id: int | None = None):
        super().__init__(message)
        self.feed_id = feed_id


class VideoNotFoundError(NotFoundError):
    """Raised when a specific video is not found when expected.

    Attributes:
        video_id: The video identifier associated with the error.
    """

    def __init__(self, message: str, video_id: int | None = None):
        super().__init__(message)
        self.video_id = video_id


class NothingToUndoError(NotFoundError):
    """Raised when the removal record holds no operation that can be undone."""


class ConflictError(FeedplayError):
    """Raised on a uniqueness or dependency violation.

    Attributes:
        feed_id: The feed identifier associated with the error.
        video_id: The video identifier associated with the error.
    """

    def __init__(
        self,
        message: str,
        feed_id: int | None = None,
        video_id: int | None = None,
    ):
        super().__init__(message)
        self.feed_id = feed_id
        self.video_id = video_id


class InvalidTransitionError(FeedplayError):
    """Raised when a lifecycle transition is not permitted.

    Attributes:
        video_id: The video identifier associated with the error.
        from_state: The state the video is currently in.
        to_state: The state that was requested.
    """

    def __init__(
        self,
        message: str,
        video_id: int | None = None,
        from_state: str | None = None,
        to_state: str | None = None,
    ):
        super().__init__(message)
        self.video_id = video_id
        self.from_state = from_state
        self.to_state = to_state


class DatabaseOperationError(FeedplayError):
    """Raised when a database operation fails.

    Attributes:
        feed_id: The feed identifier associated with the error.
        video_id: The video identifier associated with the error.
    """

    def __init__(
        self,
        message: str,
        feed_id: int | None = None,
        video_id: int | None = None,
    ):
        super().__init__(message)
        self.feed_id = feed_id
        self.video_id = video_id


# --- Feed adapter errors ---


class AdapterErrorKind(str, Enum):
    """Represent the category of a feed adapter failure."""

    NETWORK = "NETWORK"
    AUTH = "AUTH"
    PARSE_ERROR = "PARSE_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN = "UNKNOWN"

    def __str__(self) -> str:
        return self.value


class AdapterError(FeedplayError):
    """Raised when a feed adapter fails to produce candidates.

    Scoped to a single feed; a failing feed never aborts its siblings
    during a multi-feed refresh.

    Attributes:
        kind: The category of the failure.
        feed_id: The feed identifier associated with the error.
        url: The URL that was being fetched, if any.
    """

    def __init__(
        self,
        message: str,
        kind: AdapterErrorKind,
        feed_id: int | None = None,
        url: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.feed_id = feed_id
        self.url = url


# --- Playback errors ---


class PlayerError(FeedplayError):
    """Base class for external player failures.

    Attributes:
        video_id: The video identifier associated with the error.
        player_binary: The player executable that was invoked.
    """

    def __init__(
        self,
        message: str,
        video_id: int | None = None,
        player_binary: str | None = None,
    ):
        super().__init__(message)
        self.video_id = video_id
        self.player_binary = player_binary


class PlayerLaunchError(PlayerError):
    """Raised when the external player process could not be started."""


class PlayerRuntimeError(PlayerError):
    """Raised when the player exits nonzero for a reason other than cancellation.

    Attributes:
        return_code: The exit code reported for the player process.
    """

    def __init__(
        self,
        message: str,
        video_id: int | None = None,
        player_binary: str | None = None,
        return_code: int | None = None,
    ):
        super().__init__(message, video_id=video_id, player_binary=player_binary)
        self.return_code = return_code
