"""Timezone-aware datetime column type for SQLite."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, TypeDecorator

SQLITE_DATETIME_NOW = "datetime('now')"


class TimezoneAwareDatetime(TypeDecorator[datetime]):
    """Store datetimes as naive UTC and hand them back as aware UTC.

    SQLite has no timezone support, so values are normalized to UTC on the
    way in and tagged with UTC on the way out. Naive datetimes are rejected
    on insert rather than silently interpreted in local time.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(
        self, value: datetime | None, dialect: Any
    ) -> datetime | None:
        """Convert an aware datetime to naive UTC for storage.

        Raises:
            TypeError: If the datetime is not timezone-aware.
        """
        if value is None:
            return None
        if not value.tzinfo or value.tzinfo.utcoffset(value) is None:
            raise TypeError("tzinfo is required")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(
        self, value: datetime | None, dialect: Any
    ) -> datetime | None:
        """Attach UTC to a datetime read from the database."""
        if value is None:
            return None
        return value.replace(tzinfo=UTC)
