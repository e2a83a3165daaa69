"""Tests for feed descriptor validation and playable reference checks."""

import pytest

from feedplay.db.types import FeedKind
from feedplay.exceptions import ValidationError
from feedplay.feed_descriptor import (
    FeedDescriptor,
    is_http_url,
    normalize_url,
    validate_playable_reference,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "url, expected",
    [
        ("example.com/feed", "https://example.com/feed"),
        ("http://example.com/feed", "http://example.com/feed"),
        ("https://example.com/feed", "https://example.com/feed"),
    ],
)
def test_normalize_url(url: str, expected: str):
    """URLs without a scheme get https://."""
    assert normalize_url(url) == expected


@pytest.mark.unit
@pytest.mark.parametrize(
    "value, expected",
    [
        ("https://example.com/x", True),
        ("http://example.com", True),
        ("ftp://example.com/x", False),
        ("https://", False),
        ("/local/path.mp4", False),
        ("not a url", False),
    ],
)
def test_is_http_url(value: str, expected: bool):
    """Only http(s) URLs with a host qualify."""
    assert is_http_url(value) is expected


@pytest.mark.unit
def test_validate_playable_reference_accepts_urls_and_absolute_paths():
    """URLs and absolute paths are returned stripped."""
    assert validate_playable_reference(" https://a.b/c ") == "https://a.b/c"
    assert validate_playable_reference("/media/v.mkv") == "/media/v.mkv"


@pytest.mark.unit
@pytest.mark.parametrize("reference", ["", "   ", "videos/v.mkv", "ftp://a.b/c"])
def test_validate_playable_reference_rejects(reference: str):
    """Empty, relative and non-http references are rejected."""
    with pytest.raises(ValidationError) as exc_info:
        validate_playable_reference(reference)

    assert exc_info.value.field == "playable_reference"


@pytest.mark.unit
@pytest.mark.parametrize(
    "locator",
    [
        "somechannel",
        "UCabcdefghijklmnopqrstuv",
        "https://www.youtube.com/feeds/videos.xml?channel_id=UC123",
    ],
)
def test_channel_descriptor_accepts(locator: str):
    """Channel names, ids and URLs are valid channel locators."""
    descriptor = FeedDescriptor(kind=FeedKind.CHANNEL, locator=locator).validated()

    assert descriptor.locator == locator
    assert descriptor.label == locator


@pytest.mark.unit
@pytest.mark.parametrize("locator", ["two words", "@handle", "semi;colon"])
def test_channel_descriptor_rejects(locator: str):
    """Anything else is rejected for channels."""
    with pytest.raises(ValidationError):
        FeedDescriptor(kind=FeedKind.CHANNEL, locator=locator).validated()


@pytest.mark.unit
def test_query_descriptor_allows_free_text():
    """Queries are free text but bounded in length."""
    descriptor = FeedDescriptor(
        kind=FeedKind.QUERY, locator="  heute journal  ", label="News"
    ).validated()

    assert descriptor.locator == "heute journal"
    assert descriptor.label == "News"

    with pytest.raises(ValidationError):
        FeedDescriptor(kind=FeedKind.QUERY, locator="q" * 501).validated()


@pytest.mark.unit
def test_generic_descriptor_normalizes_scheme():
    """Generic feed URLs without a scheme are normalized to https."""
    descriptor = FeedDescriptor(
        kind=FeedKind.GENERIC, locator="example.com/rss"
    ).validated()

    assert descriptor.locator == "https://example.com/rss"


@pytest.mark.unit
def test_single_item_descriptor_requires_playable_reference():
    """Single-item feeds point at something playable."""
    valid = FeedDescriptor(
        kind=FeedKind.SINGLE_ITEM, locator="/media/movie.mkv", label="Movie"
    ).validated()
    assert valid.locator == "/media/movie.mkv"

    with pytest.raises(ValidationError):
        FeedDescriptor(kind=FeedKind.SINGLE_ITEM, locator="movie.mkv").validated()


@pytest.mark.unit
@pytest.mark.parametrize("kind", list(FeedKind))
def test_empty_locator_rejected(kind: FeedKind):
    """An empty locator is invalid for every kind."""
    with pytest.raises(ValidationError) as exc_info:
        FeedDescriptor(kind=kind, locator="   ").validated()

    assert exc_info.value.field == "locator"


@pytest.mark.unit
def test_blank_label_falls_back_to_locator():
    """A whitespace label is treated as no label."""
    descriptor = FeedDescriptor(
        kind=FeedKind.QUERY, locator="tagesschau", label="   "
    ).validated()

    assert descriptor.label == "tagesschau"
