"""Syndication feed adapter.

Serves channel, query and generic feeds: each resolves to a syndication URL
(see :mod:`feedplay.adapters.feed_urls`) that is fetched with httpx and
parsed with feedparser, which understands RSS 0.9x, 1.0 and 2.0 and Atom
0.3 and 1.0.
"""

import asyncio
from collections.abc import AsyncIterator, Iterator
from datetime import UTC, datetime
from email.utils import format_datetime
import io
import logging
import time
from typing import Any
from urllib.parse import urlsplit

import feedparser
import httpx

from ..db.types import CandidateVideo, Feed
from ..exceptions import AdapterError, AdapterErrorKind
from .feed_urls import feed_url

logger = logging.getLogger(__name__)

_WEB_SCHEMES = ("http", "https")


def parse_duration(value: str | None) -> float | None:
    """Parse an ``itunes:duration`` value into seconds.

    Accepts ``H:MM:SS``, ``MM:SS`` and plain seconds.

    Returns:
        The duration, or None if it is missing, zero or unparseable.
    """
    if not value or not value.strip():
        return None
    try:
        parts = [float(part) for part in value.strip().split(":")]
    except ValueError:
        logger.debug("Unparseable feed duration.", extra={"value": value})
        return None
    if len(parts) > 3 or any(part < 0 for part in parts):
        logger.debug("Unparseable feed duration.", extra={"value": value})
        return None
    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + part
    return seconds or None


def _published_at(entry: Any) -> datetime | None:
    parsed: time.struct_time | None = entry.get("published_parsed")
    if parsed is None and "updated_parsed" in entry:
        parsed = entry["updated_parsed"]
    if parsed is None:
        return None
    return datetime(*parsed[:6], tzinfo=UTC)


def _entry_url(entry: Any) -> str | None:
    for enclosure in entry.get("enclosures", []):
        if href := enclosure.get("href"):
            return href
    link: str | None = entry.get("link") or None
    # feedparser copies a permalink guid into link when there is none.
    if (
        link
        and entry.get("guidislink")
        and urlsplit(link).scheme not in _WEB_SCHEMES
    ):
        return None
    return link


def _candidates(entries: list[Any]) -> Iterator[CandidateVideo]:
    for entry in entries:
        title = (entry.get("title") or "").strip()
        url = _entry_url(entry)
        if not title or not url:
            logger.debug("Skipping entry without title or URL.", extra={"url": url})
            continue
        yield CandidateVideo(
            source_native_id=entry.get("id") or url,
            title=title,
            playable_reference=url,
            published_at=_published_at(entry),
            duration_seconds=parse_duration(entry.get("itunes_duration")),
        )


def parse_feed_document(content: bytes) -> list[CandidateVideo]:
    """Parse a syndication document into candidates, in document order.

    A document with recoverable errors still yields the entries feedparser
    found in it.

    Args:
        content: The raw document.

    Returns:
        The candidates found in the document.

    Raises:
        AdapterError: If the document is broken with no entries, or is not a
            syndication feed at all.
    """
    parsed = feedparser.parse(io.BytesIO(content))
    if parsed.entries:
        if parsed.bozo:
            logger.debug(
                "Feed document has errors; using the entries found.",
                extra={"error": str(parsed.get("bozo_exception"))},
            )
        return list(_candidates(parsed.entries))
    if parsed.bozo:
        raise AdapterError(
            f"Feed document could not be parsed: {parsed.get('bozo_exception')}",
            kind=AdapterErrorKind.PARSE_ERROR,
        )
    if not parsed.get("version"):
        raise AdapterError(
            "Document is not a syndication feed.", kind=AdapterErrorKind.PARSE_ERROR
        )
    return []


def _error_kind_for_status(status_code: int) -> AdapterErrorKind:
    match status_code:
        case 401 | 403:
            return AdapterErrorKind.AUTH
        case 404 | 410:
            return AdapterErrorKind.NOT_FOUND
        case _:
            return AdapterErrorKind.NETWORK


class SyndicationAdapter:
    """Fetch and parse the syndication feed behind a feed descriptor.

    The HTTP client is owned by the caller, which sets its timeout and
    headers such as the user agent.
    """

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def fetch(
        self, feed: Feed, since: datetime | None = None
    ) -> AsyncIterator[CandidateVideo]:
        """Yield the candidates currently listed by the feed.

        ``since`` is sent as ``If-Modified-Since``; a 304 response yields
        nothing.

        Raises:
            AdapterError: If the request fails, the server answers with an
                error status, or the document cannot be parsed.
        """
        url = feed_url(feed)
        log_params = {"feed_id": feed.id, "url": url}
        headers: dict[str, str] = {}
        if since is not None:
            headers["If-Modified-Since"] = format_datetime(
                since.astimezone(UTC), usegmt=True
            )

        logger.debug("Fetching feed document.", extra=log_params)
        try:
            response = await self._client.get(
                url, headers=headers, follow_redirects=True
            )
        except httpx.HTTPError as e:
            raise AdapterError(
                f"Request failed: {e}",
                kind=AdapterErrorKind.NETWORK,
                feed_id=feed.id,
                url=url,
            ) from e

        if response.status_code == httpx.codes.NOT_MODIFIED:
            logger.debug("Feed not modified since last sync.", extra=log_params)
            return
        if response.is_error:
            raise AdapterError(
                f"Server answered {response.status_code}.",
                kind=_error_kind_for_status(response.status_code),
                feed_id=feed.id,
                url=url,
            )

        try:
            candidates = await asyncio.to_thread(
                parse_feed_document, response.content
            )
        except AdapterError as e:
            e.feed_id = feed.id
            e.url = url
            raise

        logger.debug(
            "Feed document parsed.",
            extra={**log_params, "num_candidates": len(candidates)},
        )
        for candidate in candidates:
            yield candidate
