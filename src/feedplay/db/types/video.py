"""Video table mapped with SQLModel."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Column,
    Enum,
    FetchedValue,
    ForeignKey,
    Index,
    Integer,
    text,
)
from sqlmodel import Field, SQLModel

from .timezone_aware_datetime import SQLITE_DATETIME_NOW, TimezoneAwareDatetime
from .video_state import VideoState

# Partial-index predicates: uniqueness only applies to videos that are not
# removed, so a removed video never blocks a later re-add.
LIVE_FEED_VIDEO_PREDICATE = "state != 'REMOVED' AND feed_id IS NOT NULL"
LIVE_DIRECT_VIDEO_PREDICATE = "state != 'REMOVED' AND feed_id IS NULL"
REMOVED_AT_CHECK = "(state = 'REMOVED') = (removed_at IS NOT NULL)"


class Video(SQLModel, table=True):
    """Represent a video known to the store.

    Attributes:
        id: Stable video identifier assigned by the database.
        feed_id: Owning feed, or None for a directly added video (or one whose
            feed has since been deleted).
        feed_label: Label of the owning feed at the time of discovery, kept so
            the video stays listable after its feed is deleted.
        source_native_id: Identifier assigned by the source, used to
            deduplicate re-fetches. None for directly added videos.
        title: Display title.
        playable_reference: URI or path handed to the player.
        state: Current lifecycle state.
        position_seconds: Where playback was left off, if it was interrupted.
        duration_seconds: Length of the video, as reported by the feed or the
            player.

        Time Keeping:
            discovered_at: When the video was first merged into the store (UTC).
            published_at: Publication time reported by the source (UTC), if any.
            last_played_at: Last clean playback exit (UTC), if any.
            removed_at: When the video was removed (UTC); set only while REMOVED.
            updated_at: When the row last changed (UTC), maintained by a trigger.
    """

    id: int | None = Field(default=None, primary_key=True)
    feed_id: int | None = Field(
        default=None,
        sa_column=Column(
            Integer, ForeignKey("feed.id", ondelete="SET NULL"), nullable=True
        ),
    )
    feed_label: str | None = None
    source_native_id: str | None = None

    title: str
    playable_reference: str

    state: VideoState = Field(
        default=VideoState.AVAILABLE,
        sa_column=Column(Enum(VideoState), nullable=False),
    )

    position_seconds: float | None = None
    duration_seconds: float | None = None

    discovered_at: datetime = Field(
        sa_column=Column(TimezoneAwareDatetime, nullable=False)
    )
    published_at: datetime | None = Field(
        default=None, sa_column=Column(TimezoneAwareDatetime)
    )
    last_played_at: datetime | None = Field(
        default=None, sa_column=Column(TimezoneAwareDatetime)
    )
    removed_at: datetime | None = Field(
        default=None, sa_column=Column(TimezoneAwareDatetime)
    )
    updated_at: datetime | None = Field(
        default=None,
        sa_column=Column(
            TimezoneAwareDatetime,
            nullable=False,
            server_default=text(SQLITE_DATETIME_NOW),
            server_onupdate=FetchedValue(),
        ),
    )

    __table_args__ = (
        Index(
            "uq_video_feed_source",
            "feed_id",
            "source_native_id",
            unique=True,
            sqlite_where=text(LIVE_FEED_VIDEO_PREDICATE),
        ),
        Index(
            "uq_video_direct_reference",
            "playable_reference",
            unique=True,
            sqlite_where=text(LIVE_DIRECT_VIDEO_PREDICATE),
        ),
        Index("idx_video_state_discovered", "state", "discovered_at"),
        Index("idx_video_feed", "feed_id"),
        CheckConstraint(REMOVED_AT_CHECK, name="ck_video_removed_at"),
    )

    @property
    def is_direct(self) -> bool:
        """True if the video belongs to no feed.

        This covers videos added directly and videos whose feed was deleted.
        """
        return self.feed_id is None

    def model_dump_for_insert(self) -> dict[str, Any]:
        """Use in place of model_dump() for inserts.

        Drops the id and updated_at when unset so the database fills them in.
        """
        dump = self.model_dump()
        if dump.get("id") is None:
            dump.pop("id", None)
        if dump.get("updated_at") is None:
            dump.pop("updated_at", None)
        return dump
