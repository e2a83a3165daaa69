"""Validation and normalization of user-supplied feed descriptors."""

from dataclasses import dataclass
import logging
from pathlib import PurePath
import re
from urllib.parse import urlparse

from .db.types import FeedKind
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 500

# YouTube user names and channel ids.
_CHANNEL_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


def normalize_url(url: str) -> str:
    """Prepend https:// to a URL that has no scheme.

    Args:
        url: The URL to normalize.

    Returns:
        The URL with a scheme.
    """
    if urlparse(url).scheme:
        return url

    normalized = f"https://{url}"
    logger.debug(
        "Normalized URL by prepending https://",
        extra={"original": url, "normalized": normalized},
    )
    return normalized


def is_http_url(value: str) -> bool:
    """Return True if ``value`` is an http(s) URL with a host."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def validate_playable_reference(reference: str) -> str:
    """Check that ``reference`` is something a player can open.

    Accepts http(s) URLs and absolute filesystem paths.

    Args:
        reference: URI or path supplied by the user or an adapter.

    Returns:
        The stripped reference.

    Raises:
        ValidationError: If the reference is empty or neither a URL nor an
            absolute path.
    """
    stripped = reference.strip()
    if not stripped:
        raise ValidationError(
            "Playable reference must not be empty.", field="playable_reference"
        )
    if is_http_url(stripped) or PurePath(stripped).is_absolute():
        return stripped
    raise ValidationError(
        "Playable reference must be an http(s) URL or an absolute path.",
        field="playable_reference",
        value=reference,
    )


@dataclass(frozen=True)
class FeedDescriptor:
    """What the user asked to follow.

    Attributes:
        kind: Kind of source.
        locator: Channel name or id, query text, or URL, depending on kind.
        label: Optional display label; derived from the locator when absent.
    """

    kind: FeedKind
    locator: str
    label: str | None = None

    def validated(self) -> "FeedDescriptor":
        """Return a normalized copy of this descriptor.

        Raises:
            ValidationError: If the locator is malformed for the feed kind.
        """
        locator = self.locator.strip()
        if not locator:
            raise ValidationError("Feed locator must not be empty.", field="locator")

        match self.kind:
            case FeedKind.CHANNEL:
                if not (is_http_url(locator) or _CHANNEL_NAME_PATTERN.match(locator)):
                    raise ValidationError(
                        "Channel must be a channel name, channel id or URL.",
                        field="locator",
                        value=locator,
                    )
            case FeedKind.QUERY:
                if len(locator) > MAX_QUERY_LENGTH:
                    raise ValidationError(
                        f"Query must be at most {MAX_QUERY_LENGTH} characters.",
                        field="locator",
                    )
            case FeedKind.GENERIC:
                locator = normalize_url(locator)
                if not is_http_url(locator):
                    raise ValidationError(
                        "Feed URL must be an http(s) URL.",
                        field="locator",
                        value=locator,
                    )
            case FeedKind.SINGLE_ITEM:
                locator = validate_playable_reference(locator)

        label = (self.label or "").strip() or locator
        return FeedDescriptor(kind=self.kind, locator=locator, label=label)
