"""Database model and enum types."""

from .candidate_video import CandidateVideo
from .feed import Feed
from .feed_kind import FeedKind
from .merge_summary import MergeSummary
from .removal import Removal, RemovalItem
from .video import Video
from .video_state import VideoState

__all__ = [
    "CandidateVideo",
    "Feed",
    "FeedKind",
    "MergeSummary",
    "Removal",
    "RemovalItem",
    "Video",
    "VideoState",
]
