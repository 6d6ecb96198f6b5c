"""Python client for the Watchtrail API with optimistic episode and queue tracking."""

from watchtrail.client.cache import EntityCache
from watchtrail.client.http import WatchtrailClient
from watchtrail.client.optimistic import OptimisticCommand, OptimisticLedger
from watchtrail.client.queue import QueueTracker
from watchtrail.client.tracker import EpisodeTracker

__all__ = [
    "EntityCache",
    "EpisodeTracker",
    "OptimisticCommand",
    "OptimisticLedger",
    "QueueTracker",
    "WatchtrailClient",
]
