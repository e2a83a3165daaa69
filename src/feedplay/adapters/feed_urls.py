"""Resolve feed descriptors to the URL their syndication feed lives at."""

import re
from urllib.parse import urlencode

from ..db.types import Feed, FeedKind
from ..feed_descriptor import is_http_url

YOUTUBE_FEED_URL = "https://www.youtube.com/feeds/videos.xml"
MEDIATHEK_FEED_URL = "https://mediathekviewweb.de/feed"

_CHANNEL_ID_PATTERN = re.compile(r"^UC[A-Za-z0-9_-]{22}$")


def is_channel_id(value: str) -> bool:
    """Return True if ``value`` looks like a YouTube channel id."""
    return _CHANNEL_ID_PATTERN.match(value) is not None


def feed_url(feed: Feed) -> str:
    """Return the syndication URL for ``feed``.

    Channel descriptors are either full URLs, channel ids or user names;
    query descriptors are search terms for MediathekViewWeb.

    Raises:
        ValueError: If the feed kind has no syndication URL.
    """
    descriptor = feed.descriptor
    match feed.kind:
        case FeedKind.CHANNEL:
            if is_http_url(descriptor):
                return descriptor
            if is_channel_id(descriptor):
                return f"{YOUTUBE_FEED_URL}?{urlencode({'channel_id': descriptor})}"
            return f"{YOUTUBE_FEED_URL}?{urlencode({'user': descriptor})}"
        case FeedKind.QUERY:
            return f"{MEDIATHEK_FEED_URL}?{urlencode({'query': descriptor})}"
        case FeedKind.GENERIC:
            return descriptor
        case FeedKind.SINGLE_ITEM:
            raise ValueError(f"Feed kind {feed.kind} has no syndication URL.")
