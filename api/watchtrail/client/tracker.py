"""Optimistic episode tracking on top of the cached library.

The tracker runs the same merge and progress functions as the server, so the
optimistic record shows the progress value the server will store.

Implementation notes:
- Every change is sent as a full ``watched_episodes`` replacement built from
  the merged set, never as a diff.
- The server response replaces the optimistic record; a failed request
  restores the record exactly as it was before the change.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Sequence

from watchtrail.client.cache import LIBRARY, EntityCache, Record
from watchtrail.client.http import WatchtrailClient
from watchtrail.client.optimistic import OptimisticLedger, update_command
from watchtrail.models.library import EpisodeStatus
from watchtrail.tracking.progress import EpisodeKey, compute_progress
from watchtrail.tracking.reconcile import EpisodeMark, EpisodeUpdate, last_touched, merge_episode_updates
from watchtrail.utils.datetime import utcnow


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _marks(item: Record) -> list[EpisodeMark]:
    return [
        EpisodeMark(
            season_number=int(episode["season_number"]),
            episode_number=int(episode["episode_number"]),
            status=EpisodeStatus(episode["status"]),
            watched_at=_parse_timestamp(episode.get("watched_at")),
        )
        for episode in item.get("episodes") or []
    ]


def _mark_record(mark: EpisodeMark) -> Record:
    return {
        "season_number": mark.season_number,
        "episode_number": mark.episode_number,
        "status": mark.status.value,
        "watched_at": mark.watched_at.isoformat() if mark.watched_at else None,
    }


def project(item: Record, marks: Sequence[EpisodeMark], pointer: EpisodeKey | None) -> Record:
    """Fields of ``item`` that change once ``marks`` become its episode set."""
    season, episode = pointer if pointer else (item.get("current_season"), item.get("current_episode"))
    season_counts = {int(key): int(value) for key, value in (item.get("season_episode_counts") or {}).items()}
    progress = compute_progress(
        media_type=item["media_type"],
        status=item["status"],
        episodes=marks,
        total_episodes=item.get("total_episodes"),
        current_season=season,
        current_episode=episode,
        season_counts=season_counts,
        current_runtime=item.get("current_runtime"),
        total_runtime=item.get("total_runtime"),
    )
    return {
        "episodes": [_mark_record(mark) for mark in marks],
        "current_season": season,
        "current_episode": episode,
        "progress": progress,
    }


class EpisodeTracker:
    def __init__(
        self,
        client: WatchtrailClient,
        cache: EntityCache,
        ledger: OptimisticLedger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.client = client
        self.cache = cache
        self.ledger = ledger or OptimisticLedger()
        self._clock = clock

    async def _cached_item(self, item_id: str) -> Record:
        item = self.cache.get(LIBRARY, item_id)
        if item is None:
            item = await self.client.get_item(item_id)
            self.cache.put(LIBRARY, item)
        return item

    async def mark_episode(self, item_id: str, season_number: int, episode_number: int, status: EpisodeStatus) -> Record:
        return await self.mark_episodes(item_id, [EpisodeUpdate(season_number, episode_number, status)])

    async def mark_episodes(self, item_id: str, updates: Sequence[EpisodeUpdate]) -> Record:
        """Apply ``updates`` optimistically and persist the merged set.

        Raises whatever the client raised after rolling the cache back.
        """
        item_id = str(item_id)
        item = await self._cached_item(item_id)
        marks = merge_episode_updates(_marks(item), updates, self._clock())
        changes = project(item, marks, last_touched(updates))

        payload: Record = {
            "watched_episodes": [
                {"season_number": m.season_number, "episode_number": m.episode_number, "status": m.status.value}
                for m in marks
            ]
        }
        if changes["current_season"] is not None and changes["current_episode"] is not None:
            payload["current_season"] = changes["current_season"]
            payload["current_episode"] = changes["current_episode"]

        command = update_command(self.cache, LIBRARY, item_id, changes)
        saved = await self.ledger.run(command, lambda: self.client.update_item(item_id, payload))
        self.cache.put(LIBRARY, saved)
        self.cache.invalidate(LIBRARY)
        return saved
