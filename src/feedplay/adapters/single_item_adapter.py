"""Adapter for feeds that stand for exactly one video."""

from collections.abc import AsyncIterator
from datetime import datetime

from ..db.types import CandidateVideo, Feed


class SingleItemAdapter:
    """Yield the feed's own descriptor as its only candidate.

    The descriptor doubles as the source id, so re-syncing never produces a
    second video.
    """

    async def fetch(
        self, feed: Feed, since: datetime | None = None
    ) -> AsyncIterator[CandidateVideo]:
        yield CandidateVideo(
            source_native_id=feed.descriptor,
            title=feed.label,
            playable_reference=feed.descriptor,
        )
