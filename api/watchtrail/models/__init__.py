from watchtrail.models.library import EpisodeStatus, MediaType, Note, WatchedEpisode, WatchedItem, WatchStatus
from watchtrail.models.queue import QueueItem
from watchtrail.models.user import User

__all__ = [
    "EpisodeStatus",
    "MediaType",
    "Note",
    "QueueItem",
    "User",
    "WatchedEpisode",
    "WatchedItem",
    "WatchStatus",
]
