"""Enumeration of feed source kinds."""

from enum import Enum


class FeedKind(Enum):
    """Represent the kind of source a feed polls.

    The kind selects the adapter used during synchronization and the rules
    applied when validating the feed's descriptor.
    """

    CHANNEL = "CHANNEL"
    QUERY = "QUERY"
    SINGLE_ITEM = "SINGLE_ITEM"
    GENERIC = "GENERIC"

    def __str__(self) -> str:
        return self.value
