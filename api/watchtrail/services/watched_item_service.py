"""Library persistence: tracked titles, episode marks and derived progress.

Invariants:
- Every write path that touches episodes, status, pointers or runtimes
  recomputes and stores ``progress`` in the same transaction.
- Episode marks are unique per (item, season, episode); bulk writes replace
  the whole set with a merge that started from the persisted rows.
- Any failure rolls the session back before the error propagates.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime
from typing import Iterable, Sequence

from fastapi import HTTPException, status
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from watchtrail.catalog import CATALOG_ERRORS, tmdb
from watchtrail.catalog.tmdb import ShowDetails
from watchtrail.models.library import EpisodeStatus, MediaType, Note, WatchedEpisode, WatchedItem, WatchStatus
from watchtrail.models.queue import QueueItem
from watchtrail.schema.library import (
    EpisodeMarkIn,
    EpisodeRef,
    ProgressSummary,
    RefreshFailure,
    RefreshResult,
    SeasonProgressRead,
    WatchedItemCreate,
    WatchedItemUpdate,
)
from watchtrail.services.access import ensure_all_owned, ensure_owned, unique_ids
from watchtrail.tracking.progress import (
    EpisodeLike,
    compute_progress,
    episode_counts,
    next_unwatched_episode,
    season_progress,
    transition_dates,
)
from watchtrail.tracking.reconcile import (
    EpisodeMark,
    EpisodeUpdate,
    apply_update,
    last_touched,
    merge_episode_updates,
    to_marks,
)
from watchtrail.utils.datetime import utcnow
from watchtrail.utils.pagination import paginate_newest_first, split_page

logger = logging.getLogger("watchtrail.services.watched_items")

_EPISODE_SUFFIX = re.compile(r"\s+-\s+S\d+E\d+$")


def progress_for(item: WatchedItem, episodes: Iterable[EpisodeLike]) -> int:
    return compute_progress(
        media_type=item.media_type,
        status=item.status,
        episodes=episodes,
        total_episodes=item.total_episodes,
        current_season=item.current_season,
        current_episode=item.current_episode,
        season_counts=item.season_counts,
        current_runtime=item.current_runtime,
        total_runtime=item.total_runtime,
    )


async def _load_item(session: AsyncSession, item_id: uuid.UUID, *, with_notes: bool = False) -> WatchedItem | None:
    query = (
        select(WatchedItem)
        .options(selectinload(WatchedItem.episodes))
        .where(WatchedItem.id == item_id)
        .execution_options(populate_existing=True)
    )
    if with_notes:
        query = query.options(selectinload(WatchedItem.notes))
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def _episode_rows(session: AsyncSession, item_id: uuid.UUID) -> list[WatchedEpisode]:
    """Re-read the persisted marks for an item, locking them where supported."""
    result = await session.execute(
        select(WatchedEpisode)
        .where(WatchedEpisode.watched_item_id == item_id)
        .order_by(WatchedEpisode.season_number, WatchedEpisode.episode_number)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _lock_item(session: AsyncSession, item: WatchedItem) -> None:
    await session.execute(
        select(WatchedItem.id)
        .where(WatchedItem.id == item.id)
        .with_for_update()
    )


async def _replace_episodes(session: AsyncSession, item_id: uuid.UUID, marks: Sequence[EpisodeMark]) -> None:
    """Delete every mark of the item and insert ``marks`` in one round trip each."""
    await session.execute(
        delete(WatchedEpisode)
        .where(WatchedEpisode.watched_item_id == item_id)
        .execution_options(synchronize_session=False)
    )
    if not marks:
        return
    await session.execute(
        insert(WatchedEpisode),
        [
            {
                "watched_item_id": item_id,
                "season_number": mark.season_number,
                "episode_number": mark.episode_number,
                "status": mark.status,
                "watched_at": mark.watched_at,
            }
            for mark in marks
        ],
    )


async def get_item(
    session: AsyncSession, user_id: uuid.UUID, item_id: uuid.UUID, *, with_notes: bool = False
) -> WatchedItem:
    item = await _load_item(session, item_id, with_notes=with_notes)
    return ensure_owned(item, user_id, noun="Watched item")


async def find_item(
    session: AsyncSession, user_id: uuid.UUID, tmdb_id: int, media_type: MediaType
) -> WatchedItem | None:
    result = await session.execute(
        select(WatchedItem).where(
            WatchedItem.user_id == user_id,
            WatchedItem.tmdb_id == tmdb_id,
            WatchedItem.media_type == media_type,
        )
    )
    return result.scalar_one_or_none()


async def list_items(
    session: AsyncSession,
    user_id: uuid.UUID,
    *,
    status_filter: WatchStatus | None = None,
    media_type: MediaType | None = None,
    limit: int = 50,
    cursor: str | None = None,
) -> tuple[list[WatchedItem], str | None]:
    """List a user's library newest first with optional filters."""
    query = (
        select(WatchedItem)
        .options(selectinload(WatchedItem.episodes))
        .where(WatchedItem.user_id == user_id)
    )
    if status_filter:
        query = query.where(WatchedItem.status == status_filter)
    if media_type:
        query = query.where(WatchedItem.media_type == media_type)
    query = paginate_newest_first(query, WatchedItem.created_at, WatchedItem.id, limit=limit, cursor=cursor)
    result = await session.execute(query)
    return split_page(list(result.scalars().all()), limit)


async def search_items(
    session: AsyncSession,
    user_id: uuid.UUID,
    text: str,
    *,
    status_filter: WatchStatus | None = None,
    media_type: MediaType | None = None,
    limit: int = 20,
) -> list[WatchedItem]:
    """Case-insensitive title search, most recently touched first."""
    query = (
        select(WatchedItem)
        .options(selectinload(WatchedItem.episodes))
        .where(WatchedItem.user_id == user_id, WatchedItem.title.icontains(text, autoescape=True))
    )
    if status_filter:
        query = query.where(WatchedItem.status == status_filter)
    if media_type:
        query = query.where(WatchedItem.media_type == media_type)
    query = query.order_by(WatchedItem.updated_at.desc(), WatchedItem.title.asc()).limit(limit)
    result = await session.execute(query)
    return list(result.scalars().all())


def _apply_show_details(item: WatchedItem, details: ShowDetails, now: datetime) -> None:
    if details.number_of_seasons is not None:
        item.total_seasons = details.number_of_seasons
    if details.number_of_episodes is not None:
        item.total_episodes = details.number_of_episodes
    if details.season_episode_counts:
        item.season_episode_counts = {str(season): count for season, count in details.season_episode_counts.items()}
    if not item.poster and details.poster:
        item.poster = details.poster
    item.metadata_refreshed_at = now


async def _enrich_from_catalog(item: WatchedItem, now: datetime) -> None:
    """Best-effort totals for a new title; failures leave the fields empty."""
    catalog = tmdb.get_catalog()
    try:
        if item.media_type == MediaType.TV:
            _apply_show_details(item, await catalog.get_show_details(item.tmdb_id), now)
        else:
            movie = await catalog.get_movie_details(item.tmdb_id)
            item.total_runtime = movie.runtime
            item.release_date = item.release_date or movie.release_date
    except CATALOG_ERRORS as exc:
        logger.warning("Catalog enrichment failed for tmdb %s %s: %s", item.media_type.value, item.tmdb_id, exc)


async def create_item(session: AsyncSession, user_id: uuid.UUID, payload: WatchedItemCreate) -> WatchedItem:
    """Add a title to the user's library; duplicates are a conflict."""
    if await find_item(session, user_id, payload.tmdb_id, payload.media_type):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Title already in library")
    now = utcnow()
    item = WatchedItem(user_id=user_id, **payload.model_dump())
    item.start_date, item.finish_date = transition_dates(None, payload.status, None, None, now)
    needs_catalog = (item.media_type == MediaType.TV and item.total_episodes is None) or (
        item.media_type == MediaType.MOVIE and item.total_runtime is None
    )
    if needs_catalog:
        await _enrich_from_catalog(item, now)
    item.progress = progress_for(item, [])
    session.add(item)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Title already in library") from exc
    logger.info("User %s added %s %s to library", user_id, item.media_type.value, item.tmdb_id)
    return await _load_item(session, item.id)


def _watched_at_from(existing: Sequence[WatchedEpisode], marks: Sequence[EpisodeMark]) -> list[EpisodeMark]:
    """Keep the original timestamp for episodes that were already WATCHED."""
    previous = {(row.season_number, row.episode_number): row for row in existing}
    kept: list[EpisodeMark] = []
    for mark in marks:
        row = previous.get(mark.key)
        if mark.status == EpisodeStatus.WATCHED and row and row.status == EpisodeStatus.WATCHED and row.watched_at:
            mark = EpisodeMark(mark.season_number, mark.episode_number, mark.status, row.watched_at)
        kept.append(mark)
    return kept


def _as_updates(marks: Iterable[EpisodeMarkIn]) -> list[EpisodeUpdate]:
    return [EpisodeUpdate(mark.season_number, mark.episode_number, mark.status) for mark in marks]


async def update_watched_item(session: AsyncSession, item: WatchedItem, payload: WatchedItemUpdate) -> WatchedItem:
    """Apply a partial update and recompute progress from the final state.

    Implementation notes:
    - Status side effects run first so explicit dates in the same request win.
    - ``watched_episodes`` replaces the episode set wholesale.
    """
    if payload.watched_episodes is not None and item.media_type != MediaType.TV:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only TV shows track episodes")
    updates = payload.model_dump(exclude_unset=True, exclude={"watched_episodes"})
    now = utcnow()
    try:
        await _lock_item(session, item)
        new_status = updates.pop("status", None)
        if new_status is not None:
            item.start_date, item.finish_date = transition_dates(
                item.status, new_status, item.start_date, item.finish_date, now
            )
            item.status = new_status
        for field, value in updates.items():
            setattr(item, field, value)

        existing = await _episode_rows(session, item.id)
        if payload.watched_episodes is not None:
            marks = _watched_at_from(existing, merge_episode_updates([], _as_updates(payload.watched_episodes), now))
            item.progress = progress_for(item, marks)
            await _replace_episodes(session, item.id, marks)
        else:
            item.progress = progress_for(item, existing)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return await _load_item(session, item.id)


async def update_episode_status(
    session: AsyncSession,
    item: WatchedItem,
    season_number: int,
    episode_number: int,
    episode_status: EpisodeStatus,
) -> WatchedItem:
    """Upsert one episode mark, move the pointer to it and store the new progress."""
    if item.media_type != MediaType.TV:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only TV shows track episodes")
    now = utcnow()
    try:
        await _lock_item(session, item)
        rows = await _episode_rows(session, item.id)
        await _upsert_episode(session, item, rows, EpisodeUpdate(season_number, episode_number, episode_status), now)
        item.current_season, item.current_episode = season_number, episode_number
        item.progress = progress_for(item, await _episode_rows(session, item.id))
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return await _load_item(session, item.id)


async def _upsert_episode(
    session: AsyncSession,
    item: WatchedItem,
    rows: Sequence[WatchedEpisode],
    episode_update: EpisodeUpdate,
    now: datetime,
) -> None:
    row = next((r for r in rows if (r.season_number, r.episode_number) == episode_update.key), None)
    current = to_marks([row])[0] if row else None
    mark = apply_update(current, episode_update, now)
    if row is None:
        session.add(
            WatchedEpisode(
                watched_item_id=item.id,
                season_number=mark.season_number,
                episode_number=mark.episode_number,
                status=mark.status,
                watched_at=mark.watched_at,
            )
        )
    else:
        row.status = mark.status
        row.watched_at = mark.watched_at
    await session.flush()


async def bulk_update_episodes(
    session: AsyncSession, item: WatchedItem, episode_updates: Sequence[EpisodeUpdate]
) -> WatchedItem:
    """Merge a batch against the persisted marks and write the result once.

    The pointer ends on the last episode named in the batch.
    """
    if item.media_type != MediaType.TV:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only TV shows track episodes")
    now = utcnow()
    try:
        await _lock_item(session, item)
        existing = await _episode_rows(session, item.id)
        merged = merge_episode_updates(existing, episode_updates, now)
        pointer = last_touched(episode_updates)
        if pointer:
            item.current_season, item.current_episode = pointer
        item.progress = progress_for(item, merged)
        await _replace_episodes(session, item.id, merged)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Applied %d episode updates to %s", len(episode_updates), item.id)
    return await _load_item(session, item.id)


async def delete_item(session: AsyncSession, item: WatchedItem) -> None:
    """Delete a title together with its episode marks and notes."""
    item_id = item.id
    try:
        session.expunge(item)
        await _delete_items(session, [item_id])
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Deleted library item %s", item_id)


async def _delete_items(session: AsyncSession, ids: Sequence[uuid.UUID]) -> int:
    await session.execute(
        delete(WatchedEpisode)
        .where(WatchedEpisode.watched_item_id.in_(ids))
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(Note).where(Note.watched_item_id.in_(ids)).execution_options(synchronize_session=False)
    )
    result = await session.execute(
        delete(WatchedItem).where(WatchedItem.id.in_(ids)).execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def _owned_items(session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID]) -> list[WatchedItem]:
    ids = unique_ids(ids)
    result = await session.execute(
        select(WatchedItem)
        .options(selectinload(WatchedItem.episodes))
        .where(WatchedItem.id.in_(ids))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return ensure_all_owned(list(result.scalars().all()), ids, user_id, noun="Watched item")


async def bulk_update_status(
    session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID], new_status: WatchStatus
) -> int:
    """Set one status on several titles, applying date side effects per title."""
    now = utcnow()
    try:
        items = await _owned_items(session, user_id, ids)
        for item in items:
            item.start_date, item.finish_date = transition_dates(
                item.status, new_status, item.start_date, item.finish_date, now
            )
            item.status = new_status
            item.progress = progress_for(item, item.episodes)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return len(items)


async def bulk_update_rating(
    session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID], rating: int | None
) -> int:
    try:
        items = await _owned_items(session, user_id, ids)
        await session.execute(
            update(WatchedItem)
            .where(WatchedItem.id.in_([item.id for item in items]))
            .values(rating=rating, updated_at=utcnow())
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return len(items)


async def bulk_update_dates(
    session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID], dates: dict[str, datetime | None]
) -> int:
    """Set start and/or finish dates; only keys present in ``dates`` are written."""
    try:
        items = await _owned_items(session, user_id, ids)
        if dates:
            await session.execute(
                update(WatchedItem)
                .where(WatchedItem.id.in_([item.id for item in items]))
                .values(**dates, updated_at=utcnow())
            )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return len(items) if dates else 0


async def bulk_delete(session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID]) -> int:
    try:
        items = await _owned_items(session, user_id, ids)
        for item in items:
            session.expunge(item)
        deleted = await _delete_items(session, [item.id for item in items])
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("User %s deleted %d library items", user_id, deleted)
    return deleted


def progress_summary(item: WatchedItem) -> ProgressSummary:
    """Episode breakdown for one title from its loaded marks and stored season counts."""
    counts = episode_counts(item.episodes, item.total_episodes)
    seasons = [
        SeasonProgressRead(
            season_number=season.season_number,
            episode_count=season.episode_count,
            watched=season.watched,
            skipped=season.skipped,
            remaining=season.remaining,
            percentage=season.percentage,
        )
        for season in (
            season_progress(item.episodes, number, count) for number, count in sorted(item.season_counts.items())
        )
    ]
    next_key = next_unwatched_episode(item.episodes, item.season_counts)
    return ProgressSummary(
        watched_item_id=item.id,
        watched=counts.watched,
        skipped=counts.skipped,
        remaining=counts.remaining,
        total_episodes=item.total_episodes,
        percentage=item.progress,
        metadata_missing=item.metadata_missing,
        next_episode=EpisodeRef(season_number=next_key[0], episode_number=next_key[1]) if next_key else None,
        seasons=seasons,
    )


async def refresh_show_details(session: AsyncSession, item: WatchedItem) -> WatchedItem:
    """Pull fresh totals for one show; existing totals stay on catalog failure."""
    if item.media_type != MediaType.TV:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only TV shows have show details")
    try:
        details = await tmdb.get_catalog().get_show_details(item.tmdb_id)
    except CATALOG_ERRORS as exc:
        logger.warning("Show refresh failed for %s (tmdb %s): %s", item.id, item.tmdb_id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Catalog lookup failed: {exc}") from exc
    try:
        _apply_show_details(item, details, utcnow())
        item.progress = progress_for(item, await _episode_rows(session, item.id))
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return await _load_item(session, item.id)


async def refresh_all_details(
    session: AsyncSession,
    user_id: uuid.UUID | None = None,
    *,
    only_missing: bool = False,
    stale_before: datetime | None = None,
) -> RefreshResult:
    """Refresh TV metadata for one user, or for everyone when ``user_id`` is None.

    Failures are collected per title and never abort the batch.
    """
    query = select(WatchedItem).where(WatchedItem.media_type == MediaType.TV)
    if user_id is not None:
        query = query.where(WatchedItem.user_id == user_id)
    if only_missing:
        query = query.where(WatchedItem.total_episodes.is_(None))
    if stale_before is not None:
        query = query.where(
            (WatchedItem.metadata_refreshed_at.is_(None)) | (WatchedItem.metadata_refreshed_at < stale_before)
        )
    items = list((await session.execute(query.order_by(WatchedItem.created_at))).scalars().all())

    result = RefreshResult()
    catalog = tmdb.get_catalog()
    for item in items:
        try:
            details = await catalog.get_show_details(item.tmdb_id)
        except CATALOG_ERRORS as exc:
            logger.warning("Show refresh failed for %s (tmdb %s): %s", item.id, item.tmdb_id, exc)
            result.failed += 1
            result.errors.append(RefreshFailure(watched_item_id=item.id, title=item.title, error=str(exc)))
            continue
        _apply_show_details(item, details, utcnow())
        item.progress = progress_for(item, await _episode_rows(session, item.id))
        result.updated += 1
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Refreshed show details: %d updated, %d failed", result.updated, result.failed)
    return result


def _show_title(queue_item: QueueItem) -> str:
    return _EPISODE_SUFFIX.sub("", queue_item.title) or queue_item.title


async def sync_from_queue(session: AsyncSession, user_id: uuid.UUID, queue_item: QueueItem, now: datetime) -> WatchedItem:
    """Reflect a watched queue entry on the user's library without committing.

    Implementation notes:
    - The tracked title is found or created by (tmdb id, media type).
    - An episode entry upserts a WATCHED mark, moves the pointer to it and
      promotes PLANNED to WATCHING.
    - A show entry without an episode moves the title to WATCHING unless it
      is already COMPLETED.
    - A movie entry completes the title and stamps the finish date.
    """
    item = await find_item(session, user_id, queue_item.tmdb_id, queue_item.content_type)
    if item is None:
        item = WatchedItem(
            user_id=user_id,
            tmdb_id=queue_item.tmdb_id,
            media_type=queue_item.content_type,
            title=_show_title(queue_item),
            poster=queue_item.poster,
            release_date=queue_item.release_date,
            status=WatchStatus.PLANNED,
            progress=0,
        )
        session.add(item)
        await session.flush()
        logger.info("Created library entry for tmdb %s from queue", queue_item.tmdb_id)

    if queue_item.content_type == MediaType.MOVIE:
        item.status = WatchStatus.COMPLETED
        item.finish_date = now
        item.progress = progress_for(item, [])
        return item

    target_status = item.status
    if queue_item.is_episode:
        rows = await _episode_rows(session, item.id)
        await _upsert_episode(
            session,
            item,
            rows,
            EpisodeUpdate(queue_item.season_number, queue_item.episode_number, EpisodeStatus.WATCHED),
            now,
        )
        item.current_season, item.current_episode = queue_item.season_number, queue_item.episode_number
        if item.status == WatchStatus.PLANNED:
            target_status = WatchStatus.WATCHING
    elif item.status != WatchStatus.COMPLETED:
        target_status = WatchStatus.WATCHING
    item.start_date, item.finish_date = transition_dates(
        item.status, target_status, item.start_date, item.finish_date, now
    )
    item.status = target_status
    item.progress = progress_for(item, await _episode_rows(session, item.id))
    return item


async def count_items(session: AsyncSession, user_id: uuid.UUID) -> int:
    result = await session.execute(select(func.count(WatchedItem.id)).where(WatchedItem.user_id == user_id))
    return int(result.scalar_one())
