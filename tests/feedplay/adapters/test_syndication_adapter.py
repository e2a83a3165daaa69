"""Unit tests for the syndication adapter and feed document parsing."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime

import httpx
import pytest
import pytest_asyncio
import respx

from feedplay.adapters import SyndicationAdapter, parse_feed_document
from feedplay.adapters.syndication_adapter import parse_duration
from feedplay.db.types import CandidateVideo, Feed, FeedKind
from feedplay.exceptions import AdapterError, AdapterErrorKind

FEED_URL = "https://example.com/feed.xml"

RSS_DOCUMENT = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <title>Example</title>
    <item>
      <title>First</title>
      <guid>guid-1</guid>
      <link>https://example.com/page/1</link>
      <enclosure url="https://cdn.example.com/1.mp4" type="video/mp4" length="1"/>
      <pubDate>Mon, 01 Jan 2024 10:00:00 +0100</pubDate>
      <itunes:duration>1:02:03</itunes:duration>
    </item>
    <item>
      <title>Second</title>
      <link>https://example.com/page/2</link>
      <pubDate>garbage</pubDate>
    </item>
    <item>
      <link>https://example.com/page/untitled</link>
    </item>
    <item>
      <title>No URL</title>
    </item>
  </channel>
</rss>
"""

ATOM_DOCUMENT = b"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Channel</title>
  <entry>
    <id>yt:video:abc</id>
    <title>Atom entry</title>
    <link rel="self" href="https://example.com/self"/>
    <link rel="alternate" href="https://www.youtube.com/watch?v=abc"/>
    <published>2024-02-03T04:05:06+00:00</published>
  </entry>
  <entry>
    <title>Fallback link</title>
    <link rel="enclosure" href="https://example.com/v.webm"/>
    <updated>2024-02-04T00:00:00Z</updated>
  </entry>
  <entry>
    <id>missing-link</id>
    <title>Missing link</title>
  </entry>
</feed>
"""

RDF_DOCUMENT = b"""<?xml version="1.0" encoding="UTF-8"?>
<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"
         xmlns:dc="http://purl.org/dc/elements/1.1/"
         xmlns="http://purl.org/rss/1.0/">
  <channel rdf:about="https://example.com/">
    <title>RDF channel</title>
    <link>https://example.com/</link>
    <description>An RSS 1.0 feed</description>
  </channel>
  <item rdf:about="https://example.com/rdf/1">
    <title>RDF item</title>
    <link>https://example.com/rdf/1.mp4</link>
    <dc:date>2024-03-01T12:00:00Z</dc:date>
  </item>
</rdf:RDF>
"""

ATOM_03_DOCUMENT = b"""<?xml version="1.0" encoding="UTF-8"?>
<feed version="0.3" xmlns="http://purl.org/atom/ns#">
  <title>Old Atom</title>
  <entry>
    <title>Atom 0.3 entry</title>
    <link rel="alternate" type="text/html" href="https://example.com/a03/1"/>
    <id>tag:example.com,2004:1</id>
    <issued>2004-05-06T07:08:09Z</issued>
    <modified>2004-05-07T00:00:00Z</modified>
  </entry>
</feed>
"""


@pytest.fixture
def feed() -> Feed:
    """Provide a generic feed pointing at FEED_URL."""
    return Feed(id=1, kind=FeedKind.GENERIC, descriptor=FEED_URL, label="Example")


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[httpx.AsyncClient]:
    """Provide an httpx client that is closed after the test."""
    async with httpx.AsyncClient() as c:
        yield c


async def collect(
    adapter: SyndicationAdapter, feed: Feed, since: datetime | None = None
) -> list[CandidateVideo]:
    """Drain the adapter into a list."""
    return [c async for c in adapter.fetch(feed, since)]


# --- Tests: parse_duration ---


@pytest.mark.unit
@pytest.mark.parametrize(
    "value, expected",
    [
        ("1:02:03", 3723.0),
        ("02:03", 123.0),
        ("95", 95.0),
        ("95.5", 95.5),
        ("0", None),
        ("1:2:3:4", None),
        ("-5", None),
        ("about an hour", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_duration(value: str | None, expected: float | None):
    """itunes:duration values are read as seconds; junk is None."""
    assert parse_duration(value) == expected


# --- Tests: parse_feed_document ---


@pytest.mark.unit
def test_parse_rss_document():
    """RSS items prefer the enclosure URL and skip incomplete items."""
    candidates = parse_feed_document(RSS_DOCUMENT)

    assert candidates == [
        CandidateVideo(
            source_native_id="guid-1",
            title="First",
            playable_reference="https://cdn.example.com/1.mp4",
            published_at=datetime(2024, 1, 1, 9, 0, tzinfo=UTC),
            duration_seconds=3723.0,
        ),
        CandidateVideo(
            source_native_id="https://example.com/page/2",
            title="Second",
            playable_reference="https://example.com/page/2",
            published_at=None,
        ),
    ]


@pytest.mark.unit
def test_parse_atom_document():
    """Atom entries use the alternate link, or an enclosure link without one."""
    candidates = parse_feed_document(ATOM_DOCUMENT)

    assert [c.source_native_id for c in candidates] == [
        "yt:video:abc",
        "https://example.com/v.webm",
    ]
    assert candidates[0].playable_reference == "https://www.youtube.com/watch?v=abc"
    assert candidates[0].published_at == datetime(2024, 2, 3, 4, 5, 6, tzinfo=UTC)
    assert candidates[1].published_at == datetime(2024, 2, 4, tzinfo=UTC)


@pytest.mark.unit
def test_parse_rdf_document():
    """RSS 1.0 items take their id from rdf:about and their date from dc:date."""
    candidates = parse_feed_document(RDF_DOCUMENT)

    assert candidates == [
        CandidateVideo(
            source_native_id="https://example.com/rdf/1",
            title="RDF item",
            playable_reference="https://example.com/rdf/1.mp4",
            published_at=datetime(2024, 3, 1, 12, 0, tzinfo=UTC),
        )
    ]


@pytest.mark.unit
def test_parse_atom_03_document():
    """Atom 0.3 entries are read, with issued as the publication time."""
    candidates = parse_feed_document(ATOM_03_DOCUMENT)

    assert candidates == [
        CandidateVideo(
            source_native_id="tag:example.com,2004:1",
            title="Atom 0.3 entry",
            playable_reference="https://example.com/a03/1",
            published_at=datetime(2004, 5, 6, 7, 8, 9, tzinfo=UTC),
        )
    ]


@pytest.mark.unit
@pytest.mark.parametrize(
    "content",
    [
        b"<rss><channel><title>x</title></channel></rss>",
        b"<rss version='2.0'></rss>",
        b'<feed xmlns="http://www.w3.org/2005/Atom"><title>x</title></feed>',
    ],
)
def test_parse_empty_feed(content: bytes):
    """A feed without entries is valid and empty."""
    assert parse_feed_document(content) == []


@pytest.mark.unit
def test_parse_recovers_entries_from_broken_document():
    """Entries found in a malformed document are still returned."""
    content = b"""<rss version="2.0"><channel><title>x</title>
<item><title>Kept</title><link>https://example.com/kept</link></item>
<item><title>Broken & unescaped</title><link>https://example.com/broken</link></item>
</channel>"""

    candidates = parse_feed_document(content)

    assert "https://example.com/kept" in [c.playable_reference for c in candidates]


@pytest.mark.unit
@pytest.mark.parametrize(
    "content",
    [
        b"this is not xml",
        b"<rss><channel>",
        b"<html><body>Not a feed</body></html>",
        b"",
    ],
)
def test_parse_invalid_document(content: bytes):
    """Broken documents without entries and non-feeds are parse errors."""
    with pytest.raises(AdapterError) as exc_info:
        parse_feed_document(content)

    assert exc_info.value.kind == AdapterErrorKind.PARSE_ERROR


@pytest.mark.unit
def test_parse_does_not_expand_external_entities():
    """External entities are not resolved."""
    content = b"""<?xml version="1.0"?>
<!DOCTYPE rss [<!ENTITY xxe SYSTEM "file:///etc/passwd">]>
<rss><channel><item><title>&xxe;</title><link>https://e.com/1</link></item></channel></rss>
"""
    try:
        candidates = parse_feed_document(content)
    except AdapterError:
        return
    assert all("root:" not in c.title for c in candidates)


# --- Tests: SyndicationAdapter.fetch ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_yields_candidates(
    respx_mock: respx.Router, client: httpx.AsyncClient, feed: Feed
):
    """A 200 response is parsed into candidates in document order."""
    respx_mock.get(FEED_URL).mock(
        return_value=httpx.Response(200, content=RSS_DOCUMENT)
    )

    candidates = await collect(SyndicationAdapter(client), feed)

    assert [c.title for c in candidates] == ["First", "Second"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_sends_if_modified_since(
    respx_mock: respx.Router, client: httpx.AsyncClient, feed: Feed
):
    """The last sync time goes out as If-Modified-Since; 304 yields nothing."""
    route = respx_mock.get(FEED_URL).mock(return_value=httpx.Response(304))

    candidates = await collect(
        SyndicationAdapter(client), feed, since=datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
    )

    assert candidates == []
    assert route.calls.last.request.headers["If-Modified-Since"] == (
        "Tue, 02 Jan 2024 03:04:05 GMT"
    )


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, kind",
    [
        (401, AdapterErrorKind.AUTH),
        (403, AdapterErrorKind.AUTH),
        (404, AdapterErrorKind.NOT_FOUND),
        (410, AdapterErrorKind.NOT_FOUND),
        (500, AdapterErrorKind.NETWORK),
        (503, AdapterErrorKind.NETWORK),
    ],
)
async def test_fetch_error_status(
    respx_mock: respx.Router,
    client: httpx.AsyncClient,
    feed: Feed,
    status: int,
    kind: AdapterErrorKind,
):
    """Error statuses map to adapter error kinds."""
    respx_mock.get(FEED_URL).mock(return_value=httpx.Response(status))

    with pytest.raises(AdapterError) as exc_info:
        await collect(SyndicationAdapter(client), feed)

    assert exc_info.value.kind == kind
    assert exc_info.value.feed_id == 1
    assert exc_info.value.url == FEED_URL


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_network_error(
    respx_mock: respx.Router, client: httpx.AsyncClient, feed: Feed
):
    """Transport failures are NETWORK errors."""
    req = httpx.Request("GET", FEED_URL)
    respx_mock.get(FEED_URL).mock(
        side_effect=httpx.ConnectError("network-fail", request=req)
    )

    with pytest.raises(AdapterError) as exc_info:
        await collect(SyndicationAdapter(client), feed)

    assert exc_info.value.kind == AdapterErrorKind.NETWORK
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_parse_error_carries_feed(
    respx_mock: respx.Router, client: httpx.AsyncClient, feed: Feed
):
    """Parse errors are tagged with the feed and URL."""
    respx_mock.get(FEED_URL).mock(return_value=httpx.Response(200, content=b"<nope"))

    with pytest.raises(AdapterError) as exc_info:
        await collect(SyndicationAdapter(client), feed)

    assert exc_info.value.kind == AdapterErrorKind.PARSE_ERROR
    assert exc_info.value.feed_id == 1
    assert exc_info.value.url == FEED_URL
