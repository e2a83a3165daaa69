"""Outcome of synchronizing a single feed."""

from dataclasses import dataclass
from typing import Any

from ...db.types import MergeSummary


@dataclass
class FeedSyncResult:
    """Result of fetching and merging one feed.

    Exactly one of ``merge`` and ``error`` is set.

    Attributes:
        feed_id: The feed that was synchronized.
        label: The feed's display label.
        merge: Merge counts, if the feed synced.
        error: Why the feed failed to sync, if it did.
        duration_seconds: Time from the start of the fetch to the end of
            the merge.
    """

    feed_id: int
    label: str
    merge: MergeSummary | None = None
    error: Exception | None = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """True if the feed was fetched and merged."""
        return self.error is None

    def summary_dict(self) -> dict[str, Any]:
        """Return a dictionary summary suitable for logging."""
        return {
            "feed_id": self.feed_id,
            "success": self.success,
            "added": self.merge.added if self.merge else 0,
            "unchanged": self.merge.unchanged if self.merge else 0,
            "reactivated": self.merge.reactivated if self.merge else 0,
            "duration_seconds": round(self.duration_seconds, 3),
            "error": str(self.error) if self.error else None,
        }
