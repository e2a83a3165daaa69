"""Removal record tables backing undo.

A ``Removal`` is one user-level removal operation; its ``RemovalItem`` rows
capture the state each affected video was in beforehand. Removing a single
video produces one item, removing a feed with cascade produces one item per
live video of that feed.
"""

from datetime import datetime

from sqlalchemy import Column, Enum, ForeignKey, Integer
from sqlmodel import Field, SQLModel

from .timezone_aware_datetime import TimezoneAwareDatetime
from .video_state import VideoState


class Removal(SQLModel, table=True):
    """ORM model for one undoable removal operation.

    Attributes:
        id: Monotonically increasing operation identifier.
        removed_at: When the removal happened (UTC).
    """

    id: int | None = Field(default=None, primary_key=True)
    removed_at: datetime = Field(
        sa_column=Column(TimezoneAwareDatetime, nullable=False)
    )


class RemovalItem(SQLModel, table=True):
    """ORM model for one video affected by a removal operation.

    Attributes:
        removal_id: The owning removal operation.
        video_id: The removed video.
        prior_state: State the video was in before the removal.
    """

    removal_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("removal.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    video_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("video.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    prior_state: VideoState = Field(
        sa_column=Column(Enum(VideoState), nullable=False)
    )
