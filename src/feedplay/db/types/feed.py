"""Feed table mapped with SQLModel."""

from datetime import datetime
from typing import Any

from sqlalchemy import Column, Enum, Integer, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from .feed_kind import FeedKind
from .timezone_aware_datetime import SQLITE_DATETIME_NOW, TimezoneAwareDatetime


class Feed(SQLModel, table=True):
    """ORM model representing a polled feed.

    Attributes:
        id: Stable feed identifier assigned by the database.
        kind: Kind of source, used to pick the adapter.
        descriptor: Source-specific locator (channel name or id, query, URL).
        label: User-assigned display label.

        Time Keeping:
            created_at: When the feed was added (UTC).
            last_synced_at: Last successful synchronization (UTC), if any.

        Error Tracking:
            last_failed_sync_at: Last failed synchronization (UTC), if any.
            consecutive_failures: Failed synchronizations since the last success.
            last_error: Message of the most recent synchronization failure.
    """

    id: int | None = Field(default=None, primary_key=True)
    kind: FeedKind = Field(sa_column=Column(Enum(FeedKind), nullable=False))
    descriptor: str
    label: str

    # ----------------------------------------------------- time keeping ----
    created_at: datetime | None = Field(
        default=None,
        sa_column=Column(
            TimezoneAwareDatetime,
            nullable=False,
            server_default=text(SQLITE_DATETIME_NOW),
        ),
    )
    last_synced_at: datetime | None = Field(
        default=None, sa_column=Column(TimezoneAwareDatetime)
    )

    # ------------------------------------------------------ error tracking
    last_failed_sync_at: datetime | None = Field(
        default=None, sa_column=Column(TimezoneAwareDatetime)
    )
    consecutive_failures: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default="0"),
    )
    last_error: str | None = None

    __table_args__ = (UniqueConstraint("kind", "descriptor", name="uq_feed_source"),)

    def model_dump_for_insert(self) -> dict[str, Any]:
        """Use in place of model_dump() for inserts.

        Drops the id and any database-managed timestamp left unset so the
        database can fill them in.
        """
        dump = self.model_dump()
        if dump.get("id") is None:
            dump.pop("id", None)
        if dump.get("created_at") is None:
            dump.pop("created_at", None)
        return dump
