"""Feed adapter protocol.

An adapter turns one feed into a finite stream of candidate videos. It is
stateless between calls; everything it needs comes from the feed row.
"""

from collections.abc import AsyncIterator
from datetime import datetime
from typing import Protocol

from ..db.types import CandidateVideo, Feed


class FeedAdapter(Protocol):
    """Protocol implemented by every source-specific feed adapter."""

    def fetch(
        self, feed: Feed, since: datetime | None = None
    ) -> AsyncIterator[CandidateVideo]:
        """Produce the feed's current candidates in source order.

        Args:
            feed: The feed to fetch.
            since: Time of the last successful sync, if any. Adapters may use
                it to skip unchanged sources.

        Returns:
            A finite async iterator of candidates.

        Raises:
            AdapterError: While iterating, if the source cannot be read.
        """
        ...
