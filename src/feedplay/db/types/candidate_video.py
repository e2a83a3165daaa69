"""Candidate video records produced by feed adapters."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class CandidateVideo:
    """A video reported by a feed adapter, before deduplication.

    Attributes:
        source_native_id: Identifier assigned by the source; stable across
            re-fetches of the same feed.
        title: Title as currently reported upstream.
        playable_reference: URI or path handed to the player.
        published_at: Publication time reported by the source (UTC), if any.
        duration_seconds: Length of the video reported by the source, if any.
    """

    source_native_id: str
    title: str
    playable_reference: str
    published_at: datetime | None = None
    duration_seconds: float | None = None
