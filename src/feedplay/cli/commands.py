"""Subcommand models for the feedplay command line."""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import CliPositionalArg

from ..db.types import FeedKind, VideoState

FeedKindName = Literal["channel", "query", "single-item", "generic"]
VideoStateName = Literal["available", "active", "removed"]

FEED_KINDS: dict[FeedKindName, FeedKind] = {
    "channel": FeedKind.CHANNEL,
    "query": FeedKind.QUERY,
    "single-item": FeedKind.SINGLE_ITEM,
    "generic": FeedKind.GENERIC,
}

VIDEO_STATES: dict[VideoStateName, VideoState] = {
    "available": VideoState.AVAILABLE,
    "active": VideoState.ACTIVE,
    "removed": VideoState.REMOVED,
}


class AddFeedCommand(BaseModel):
    """Follow a channel, a search query, a single video or a feed URL."""

    kind: CliPositionalArg[FeedKindName] = Field(description="Kind of feed.")
    locator: CliPositionalArg[str] = Field(
        description="Channel name or id, query text, or URL."
    )
    label: str | None = Field(default=None, description="Display label.")


class AddVideoCommand(BaseModel):
    """Add a video by URL or path and put it on the active list."""

    reference: CliPositionalArg[str] = Field(description="URL or absolute path.")
    title: str | None = Field(default=None, description="Display title.")


class RefreshCommand(BaseModel):
    """Fetch feeds and merge new videos."""

    feed_id: list[int] = Field(
        default_factory=list[int],
        description="Feed to refresh; repeat for several. Default: all feeds.",
    )


class FeedsCommand(BaseModel):
    """List feeds."""


class VideosCommand(BaseModel):
    """List videos, newest first."""

    state: VideoStateName | None = Field(
        default=None, description="Only list videos in this state."
    )
    feed_id: int | None = Field(default=None, description="Only list this feed.")


class PlayCommand(BaseModel):
    """Play a video with the configured player."""

    video_id: CliPositionalArg[int]


class ActivateCommand(BaseModel):
    """Put a video on the active list."""

    video_id: CliPositionalArg[int]


class DeactivateCommand(BaseModel):
    """Take a video off the active list."""

    video_id: CliPositionalArg[int]


class RemoveCommand(BaseModel):
    """Remove a video."""

    video_id: CliPositionalArg[int]


class UndoCommand(BaseModel):
    """Undo the most recent removal."""


class RemoveFeedCommand(BaseModel):
    """Stop following a feed."""

    feed_id: CliPositionalArg[int]
    cascade: bool = Field(
        default=False, description="Also remove the feed's videos."
    )


class RenameFeedCommand(BaseModel):
    """Change a feed's display label."""

    feed_id: CliPositionalArg[int]
    label: CliPositionalArg[str]


Command = (
    AddFeedCommand
    | AddVideoCommand
    | RefreshCommand
    | FeedsCommand
    | VideosCommand
    | PlayCommand
    | ActivateCommand
    | DeactivateCommand
    | RemoveCommand
    | UndoCommand
    | RemoveFeedCommand
    | RenameFeedCommand
)
