from .feed_sync_result import FeedSyncResult
from .refresh_summary import RefreshSummary

__all__ = [
    "FeedSyncResult",
    "RefreshSummary",
]
