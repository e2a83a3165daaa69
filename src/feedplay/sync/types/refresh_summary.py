"""Aggregate outcome of a refresh over one or more feeds."""

from dataclasses import dataclass, field
from typing import Any

from .feed_sync_result import FeedSyncResult


@dataclass
class RefreshSummary:
    """Per-feed results of a refresh, in the order the feeds were requested.

    A refresh always completes; failing feeds are reported here next to the
    ones that synced.

    Attributes:
        results: One result per refreshed feed.
    """

    results: list[FeedSyncResult] = field(default_factory=list[FeedSyncResult])

    @property
    def succeeded(self) -> list[FeedSyncResult]:
        """Results of feeds that synced."""
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[FeedSyncResult]:
        """Results of feeds that failed to sync."""
        return [r for r in self.results if not r.success]

    @property
    def added(self) -> int:
        """Videos added across all feeds."""
        return sum(r.merge.added for r in self.results if r.merge)

    @property
    def unchanged(self) -> int:
        """Known videos seen again across all feeds."""
        return sum(r.merge.unchanged for r in self.results if r.merge)

    @property
    def reactivated(self) -> int:
        """Removed videos restored across all feeds."""
        return sum(r.merge.reactivated for r in self.results if r.merge)

    def summary_dict(self) -> dict[str, Any]:
        """Return a dictionary summary suitable for logging."""
        return {
            "feeds": len(self.results),
            "failed_feed_ids": [r.feed_id for r in self.failed],
            "added": self.added,
            "unchanged": self.unchanged,
            "reactivated": self.reactivated,
        }
