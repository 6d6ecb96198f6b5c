from __future__ import annotations

from datetime import datetime, timedelta, timezone

from watchtrail.models.library import EpisodeStatus
from watchtrail.tracking.progress import tv_progress
from watchtrail.tracking.reconcile import (
    EpisodeMark,
    EpisodeUpdate,
    apply_update,
    episode_status,
    last_touched,
    merge_episode_updates,
)

NOW = datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)
EARLIER = NOW - timedelta(days=3)


def test_merge_carries_untouched_marks_forward() -> None:
    existing = [
        EpisodeMark(1, 1, EpisodeStatus.WATCHED, EARLIER),
        EpisodeMark(1, 2, EpisodeStatus.SKIPPED),
    ]
    merged = merge_episode_updates(existing, [EpisodeUpdate(1, 3, EpisodeStatus.WATCHED)], NOW)

    assert [mark.key for mark in merged] == [(1, 1), (1, 2), (1, 3)]
    assert merged[0] == existing[0]
    assert merged[1] == existing[1]
    assert merged[2].watched_at == NOW


def test_merge_later_updates_win_and_result_is_sorted() -> None:
    updates = [
        EpisodeUpdate(2, 1, EpisodeStatus.WATCHED),
        EpisodeUpdate(1, 5, EpisodeStatus.WATCHED),
        EpisodeUpdate(2, 1, EpisodeStatus.SKIPPED),
    ]
    merged = merge_episode_updates([], updates, NOW)

    assert [(mark.key, mark.status) for mark in merged] == [
        ((1, 5), EpisodeStatus.WATCHED),
        ((2, 1), EpisodeStatus.SKIPPED),
    ]
    assert merged[1].watched_at is None


def test_upserting_the_same_update_twice_is_idempotent() -> None:
    update = EpisodeUpdate(1, 4, EpisodeStatus.WATCHED)
    once = merge_episode_updates([], [update], NOW)
    twice = merge_episode_updates(once, [update], NOW)

    assert once == twice
    assert tv_progress(once, 10) == tv_progress(twice, 10) == 10


def test_apply_update_clears_timestamp_when_unwatched() -> None:
    mark = EpisodeMark(1, 1, EpisodeStatus.WATCHED, EARLIER)
    assert apply_update(mark, EpisodeUpdate(1, 1, EpisodeStatus.UNWATCHED), NOW).watched_at is None
    assert apply_update(None, EpisodeUpdate(1, 1, EpisodeStatus.WATCHED), NOW).watched_at == NOW


def test_episode_status_defaults_to_unwatched() -> None:
    marks = [EpisodeMark(1, 1, EpisodeStatus.SKIPPED)]
    assert episode_status(marks, 1, 1) == EpisodeStatus.SKIPPED
    assert episode_status(marks, 1, 2) == EpisodeStatus.UNWATCHED


def test_last_touched_is_the_last_entry_in_the_batch() -> None:
    updates = [EpisodeUpdate(1, 9, EpisodeStatus.WATCHED), EpisodeUpdate(1, 2, EpisodeStatus.WATCHED)]
    assert last_touched(updates) == (1, 2)
    assert last_touched([]) is None
