from .coordinator import PlaybackCoordinator
from .player import Player
from .types import PlaybackOutcome, PlaybackProgress, PlaybackStatus, PlayerExit

__all__ = [
    "PlaybackCoordinator",
    "PlaybackOutcome",
    "PlaybackProgress",
    "PlaybackStatus",
    "Player",
    "PlayerExit",
]
