"""Episode mark reconciliation used by bulk updates and the client tracker."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, Sequence

from watchtrail.models.library import EpisodeStatus
from watchtrail.tracking.progress import EpisodeKey, EpisodeLike


@dataclass(frozen=True, slots=True)
class EpisodeMark:
    """Snapshot of one episode's mark, detached from any session."""
    season_number: int
    episode_number: int
    status: EpisodeStatus
    watched_at: datetime | None = None

    @property
    def key(self) -> EpisodeKey:
        return self.season_number, self.episode_number


@dataclass(frozen=True, slots=True)
class EpisodeUpdate:
    """Requested status for one episode."""
    season_number: int
    episode_number: int
    status: EpisodeStatus

    @property
    def key(self) -> EpisodeKey:
        return self.season_number, self.episode_number


def to_marks(records: Iterable[EpisodeLike]) -> list[EpisodeMark]:
    """Copy ORM rows or API payloads into detached marks."""
    return [
        EpisodeMark(
            season_number=int(record.season_number),
            episode_number=int(record.episode_number),
            status=EpisodeStatus(record.status),
            watched_at=getattr(record, "watched_at", None),
        )
        for record in records
    ]


def episode_status(episodes: Iterable[EpisodeLike], season_number: int, episode_number: int) -> EpisodeStatus:
    """Status of one episode; a missing mark reads as UNWATCHED."""
    for episode in episodes:
        if episode.season_number == season_number and episode.episode_number == episode_number:
            return EpisodeStatus(episode.status)
    return EpisodeStatus.UNWATCHED


def apply_update(mark: EpisodeMark | None, update: EpisodeUpdate, now: datetime) -> EpisodeMark:
    """Apply one update to an existing mark or to a virtual UNWATCHED one."""
    watched_at = now if update.status == EpisodeStatus.WATCHED else None
    if mark is None:
        return EpisodeMark(update.season_number, update.episode_number, EpisodeStatus(update.status), watched_at)
    return replace(mark, status=EpisodeStatus(update.status), watched_at=watched_at)


def merge_episode_updates(
    existing: Iterable[EpisodeLike],
    updates: Sequence[EpisodeUpdate],
    now: datetime,
) -> list[EpisodeMark]:
    """Merge a batch of updates into the full current mark set.

    Implementation notes:
    - Untouched marks are carried forward unchanged.
    - Later updates in the batch win for the same episode.
    - The result holds one mark per episode, sorted by (season, episode).
    """
    merged: dict[EpisodeKey, EpisodeMark] = {mark.key: mark for mark in to_marks(existing)}
    for update in updates:
        merged[update.key] = apply_update(merged.get(update.key), update, now)
    return [merged[key] for key in sorted(merged)]


def last_touched(updates: Sequence[EpisodeUpdate]) -> EpisodeKey | None:
    """Pointer target after a batch: the last episode named in it."""
    if not updates:
        return None
    return updates[-1].key
