from .engine import SyncEngine
from .types import FeedSyncResult, RefreshSummary

__all__ = [
    "FeedSyncResult",
    "RefreshSummary",
    "SyncEngine",
]
