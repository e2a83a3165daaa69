from .feed_db import FeedDatabase
from .migrate import run_migrations
from .sqlalchemy_core import SqlalchemyCore
from .video_db import VideoDatabase

__all__ = [
    "FeedDatabase",
    "SqlalchemyCore",
    "VideoDatabase",
    "run_migrations",
]
