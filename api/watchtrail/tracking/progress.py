"""Pure progress calculations shared by the API and the client tracker.

Invariants:
- Every function is a pure function of its arguments.
- Percentages round half up and are clamped to 0..100, so two callers with the
  same inputs always agree on the integer result.
- An UNWATCHED mark counts the same as a missing one.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping, Protocol

from watchtrail.models.library import EpisodeStatus, MediaType, WatchStatus

ACCOUNTED_STATUSES = frozenset({EpisodeStatus.WATCHED, EpisodeStatus.SKIPPED})

EpisodeKey = tuple[int, int]


class EpisodeLike(Protocol):
    season_number: int
    episode_number: int
    status: EpisodeStatus | str


@dataclass(frozen=True, slots=True)
class EpisodeCounts:
    watched: int
    skipped: int
    remaining: int
    total: int | None


@dataclass(frozen=True, slots=True)
class SeasonProgress:
    season_number: int
    episode_count: int
    watched: int
    skipped: int
    remaining: int
    percentage: int


@dataclass(frozen=True, slots=True)
class ShowStatistics:
    total_episodes: int
    watched: int
    skipped: int
    remaining: int
    completed_seasons: int
    percentage: int


def percent(numerator: int, denominator: int) -> int:
    """Round 100 * numerator / denominator half up, clamped to 0..100."""
    if denominator <= 0:
        return 0
    numerator = max(numerator, 0)
    value = (200 * numerator + denominator) // (2 * denominator)
    return max(0, min(100, value))


def _statuses(episodes: Iterable[EpisodeLike]) -> dict[EpisodeKey, EpisodeStatus]:
    """Collapse marks by key; later marks for the same episode win."""
    result: dict[EpisodeKey, EpisodeStatus] = {}
    for episode in episodes:
        result[(int(episode.season_number), int(episode.episode_number))] = EpisodeStatus(episode.status)
    return result


def _tally(statuses: Iterable[EpisodeStatus]) -> tuple[int, int]:
    watched = skipped = 0
    for status in statuses:
        if status == EpisodeStatus.WATCHED:
            watched += 1
        elif status == EpisodeStatus.SKIPPED:
            skipped += 1
    return watched, skipped


def movie_progress(
    status: WatchStatus | str,
    current_runtime: int | None,
    total_runtime: int | None,
) -> int:
    status = WatchStatus(status)
    if status == WatchStatus.COMPLETED:
        return 100
    if status == WatchStatus.PLANNED:
        return 0
    if current_runtime is not None and total_runtime:
        return percent(current_runtime, total_runtime)
    return 0


def episode_counts(episodes: Iterable[EpisodeLike], total_episodes: int | None) -> EpisodeCounts:
    watched, skipped = _tally(_statuses(episodes).values())
    remaining = max(total_episodes - watched - skipped, 0) if total_episodes else 0
    return EpisodeCounts(watched=watched, skipped=skipped, remaining=remaining, total=total_episodes)


def tv_progress(episodes: Iterable[EpisodeLike], total_episodes: int | None) -> int:
    """Percentage of episodes watched or skipped.

    An unknown or zero total always yields 0; no estimate is derived from
    season counts.
    """
    if not total_episodes:
        return 0
    counts = episode_counts(episodes, total_episodes)
    return percent(counts.watched + counts.skipped, total_episodes)


def season_progress(episodes: Iterable[EpisodeLike], season_number: int, episode_count: int) -> SeasonProgress:
    in_season = [
        status for (season, _), status in _statuses(episodes).items() if season == season_number
    ]
    watched, skipped = _tally(in_season)
    return SeasonProgress(
        season_number=season_number,
        episode_count=episode_count,
        watched=watched,
        skipped=skipped,
        remaining=max(episode_count - watched - skipped, 0),
        percentage=percent(watched + skipped, episode_count),
    )


def show_statistics(episodes: Iterable[EpisodeLike], season_counts: Mapping[int, int]) -> ShowStatistics:
    marks = list(episodes)
    seasons = [season_progress(marks, season, count) for season, count in sorted(season_counts.items())]
    total = sum(season.episode_count for season in seasons)
    watched = sum(season.watched for season in seasons)
    skipped = sum(season.skipped for season in seasons)
    return ShowStatistics(
        total_episodes=total,
        watched=watched,
        skipped=skipped,
        remaining=max(total - watched - skipped, 0),
        completed_seasons=sum(1 for season in seasons if season.episode_count > 0 and season.remaining == 0),
        percentage=percent(watched + skipped, total),
    )


def next_unwatched_episode(
    episodes: Iterable[EpisodeLike], season_counts: Mapping[int, int]
) -> EpisodeKey | None:
    """First (season, episode) in ascending order without a watched or skipped mark."""
    statuses = _statuses(episodes)
    for season in sorted(season_counts):
        for episode in range(1, int(season_counts[season]) + 1):
            if statuses.get((season, episode)) not in ACCOUNTED_STATUSES:
                return season, episode
    return None


def episode_after(
    current_season: int | None,
    current_episode: int | None,
    season_counts: Mapping[int, int] | None,
) -> EpisodeKey | None:
    """Episode following the pointer, or None once the last known season is done.

    Without a pointer the first known season's opening episode is returned.
    Without season counts the pointer simply advances within its season.
    """
    counts = {season: count for season, count in (season_counts or {}).items() if count > 0}
    if current_season is None:
        return (min(counts), 1) if counts else (1, 1)
    episode = current_episode or 0
    if current_season not in counts:
        if counts and current_season > max(counts):
            return None
        return current_season, episode + 1
    if episode < counts[current_season]:
        return current_season, episode + 1
    later = sorted(season for season in counts if season > current_season)
    return (later[0], 1) if later else None


def pointer_progress(
    current_season: int | None,
    current_episode: int | None,
    season_counts: Mapping[int, int] | None,
    total_episodes: int | None,
) -> int:
    """Legacy percentage derived from the current season/episode pointer.

    Seasons before the pointer count in full, the pointer season counts
    ``current_episode`` episodes and later seasons count nothing.
    """
    if not total_episodes or current_season is None or current_episode is None:
        return 0
    if not season_counts:
        return percent(current_episode, total_episodes)
    watched = 0
    for season, count in season_counts.items():
        if season < current_season:
            watched += count
        elif season == current_season:
            watched += min(current_episode, count)
    return percent(watched, total_episodes)


def compute_progress(
    *,
    media_type: MediaType | str,
    status: WatchStatus | str,
    episodes: Iterable[EpisodeLike] = (),
    total_episodes: int | None = None,
    current_season: int | None = None,
    current_episode: int | None = None,
    season_counts: Mapping[int, int] | None = None,
    current_runtime: int | None = None,
    total_runtime: int | None = None,
) -> int:
    """Derive the stored progress value for a tracked title.

    Implementation notes:
    - Movies use runtime ratios.
    - Shows with any episode rows use them alone, whatever their status; an
      UNWATCHED row counts as nothing, the same as a missing one.
    - Only a show with no rows at all falls back to the legacy pointer, then
      to the status alone (COMPLETED is 100, anything else 0).
    """
    if MediaType(media_type) == MediaType.MOVIE:
        return movie_progress(status, current_runtime, total_runtime)
    marks = list(episodes)
    if marks:
        return tv_progress(marks, total_episodes)
    if current_season is not None and current_episode is not None and total_episodes:
        return pointer_progress(current_season, current_episode, season_counts, total_episodes)
    return 100 if WatchStatus(status) == WatchStatus.COMPLETED else 0


def transition_dates(
    previous_status: WatchStatus | str | None,
    new_status: WatchStatus | str,
    start_date: datetime | None,
    finish_date: datetime | None,
    now: datetime,
) -> tuple[datetime | None, datetime | None]:
    """Return (start_date, finish_date) after a status change.

    WATCHING fills an unset start date; COMPLETED always stamps the finish date.
    Setting the current status again changes nothing.
    """
    new_status = WatchStatus(new_status)
    if previous_status is not None and WatchStatus(previous_status) == new_status:
        return start_date, finish_date
    if new_status == WatchStatus.WATCHING and start_date is None:
        start_date = now
    elif new_status == WatchStatus.COMPLETED:
        finish_date = now
    return start_date, finish_date
