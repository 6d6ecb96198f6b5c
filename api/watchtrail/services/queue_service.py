"""Watch queue position management.

Invariants:
- After every committed operation the positions of a user's unwatched
  entries are exactly 1..N in queue order.
- Watched entries keep their last position and are never renumbered.
- Each operation re-reads the user's queue under a row lock, computes the new
  order in memory and writes changed positions in one UPDATE.
- Bulk operations check existence and ownership of every id before any write.
"""

from __future__ import annotations

import logging
import uuid
from typing import Sequence

from fastapi import HTTPException, status
from sqlalchemy import and_, case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from watchtrail.catalog import CATALOG_ERRORS, tmdb
from watchtrail.models.library import MediaType
from watchtrail.models.queue import QueueItem
from watchtrail.schema.queue import NextEpisodeCreate, QueueItemCreate
from watchtrail.services import watched_item_service
from watchtrail.services.access import ensure_all_owned, ensure_owned, unique_ids
from watchtrail.tracking.progress import episode_after
from watchtrail.utils.datetime import utcnow

logger = logging.getLogger("watchtrail.services.queue")


async def get_queue(session: AsyncSession, user_id: uuid.UUID) -> list[QueueItem]:
    result = await session.execute(
        select(QueueItem)
        .where(QueueItem.user_id == user_id, QueueItem.watched.is_(False))
        .order_by(QueueItem.position, QueueItem.added_at)
    )
    return list(result.scalars().all())


async def get_history(session: AsyncSession, user_id: uuid.UUID, *, limit: int = 100) -> list[QueueItem]:
    """Watched entries, most recently watched first."""
    result = await session.execute(
        select(QueueItem)
        .where(QueueItem.user_id == user_id, QueueItem.watched.is_(True))
        .order_by(QueueItem.updated_at.desc(), QueueItem.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_queue(session: AsyncSession, user_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count(QueueItem.id)).where(QueueItem.user_id == user_id, QueueItem.watched.is_(False))
    )
    return int(result.scalar_one())


async def _lock_active(session: AsyncSession, user_id: uuid.UUID) -> list[QueueItem]:
    """Re-read and lock the user's unwatched entries in queue order."""
    result = await session.execute(
        select(QueueItem)
        .where(QueueItem.user_id == user_id, QueueItem.watched.is_(False))
        .order_by(QueueItem.position, QueueItem.added_at)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _get_owned(session: AsyncSession, user_id: uuid.UUID, item_id: uuid.UUID) -> QueueItem:
    item = await session.get(QueueItem, item_id, populate_existing=True, with_for_update=True)
    return ensure_owned(item, user_id, noun="Queue item")


async def _get_all_owned(session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID]) -> list[QueueItem]:
    ids = unique_ids(ids)
    result = await session.execute(
        select(QueueItem)
        .where(QueueItem.id.in_(ids))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return ensure_all_owned(list(result.scalars().all()), ids, user_id, noun="Queue item")


async def _write_positions(session: AsyncSession, ordered: Sequence[QueueItem]) -> int:
    """Number ``ordered`` 1..N, updating only rows whose position changes."""
    changed = [(position, item) for position, item in enumerate(ordered, start=1) if item.position != position]
    if not changed:
        return 0
    now = utcnow()
    whens = [(QueueItem.id == item.id, position) for position, item in changed]
    await session.execute(
        update(QueueItem)
        .where(QueueItem.id.in_([item.id for _, item in changed]))
        .values(position=case(*whens, else_=QueueItem.position), updated_at=now)
        .execution_options(synchronize_session=False)
    )
    # The statement bypasses the unit of work; mirror it on the loaded rows.
    for position, item in changed:
        set_committed_value(item, "position", position)
        set_committed_value(item, "updated_at", now)
    return len(changed)


async def _find_entry(
    session: AsyncSession, user_id: uuid.UUID, content_id: str, season_number: int | None, episode_number: int | None
) -> QueueItem | None:
    result = await session.execute(
        select(QueueItem).where(
            QueueItem.user_id == user_id,
            QueueItem.content_id == content_id,
            QueueItem.season_number.is_(None) if season_number is None else QueueItem.season_number == season_number,
            QueueItem.episode_number.is_(None) if episode_number is None else QueueItem.episode_number == episode_number,
        )
    )
    return result.scalars().first()


async def _episode_name(tmdb_id: int, season_number: int, episode_number: int) -> str | None:
    try:
        episode = await tmdb.get_catalog().get_episode_details(tmdb_id, season_number, episode_number)
    except CATALOG_ERRORS as exc:
        logger.warning("Episode name lookup failed for tmdb %s S%sE%s: %s", tmdb_id, season_number, episode_number, exc)
        return None
    return episode.name


async def add_item(session: AsyncSession, user_id: uuid.UUID, payload: QueueItemCreate) -> QueueItem:
    """Append an entry to the end of the user's queue.

    Implementation notes:
    - An existing entry for the same content and episode is a conflict even
      when it has already been watched.
    - Episode names are looked up before the queue is locked; a failed lookup
      leaves the name empty.
    """
    if await _find_entry(session, user_id, payload.content_id, payload.season_number, payload.episode_number):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already in queue")
    episode_name = payload.episode_name
    if payload.content_type == MediaType.TV and payload.episode_number is not None and not episode_name:
        episode_name = await _episode_name(payload.tmdb_id, payload.season_number, payload.episode_number)

    try:
        active = await _lock_active(session, user_id)
        if await _find_entry(session, user_id, payload.content_id, payload.season_number, payload.episode_number):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already in queue")
        item = QueueItem(
            user_id=user_id,
            **payload.model_dump(exclude={"episode_name"}),
            episode_name=episode_name,
            position=len(active) + 1,
            watched=False,
        )
        session.add(item)
        await _write_positions(session, active)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("User %s queued %s at position %d", user_id, item.content_id, item.position)
    return item


async def add_next_episode(session: AsyncSession, user_id: uuid.UUID, payload: NextEpisodeCreate) -> QueueItem:
    """Queue the episode after the show's pointer, titled ``<Title> - SxxEyy``."""
    tracked = await watched_item_service.find_item(session, user_id, payload.tmdb_id, MediaType.TV)
    current_season = payload.current_season
    current_episode = payload.current_episode
    if current_season is None and tracked is not None:
        current_season, current_episode = tracked.current_season, tracked.current_episode

    season_counts = tracked.season_counts if tracked is not None else {}
    poster = payload.poster or (tracked.poster if tracked is not None else None)
    if not season_counts:
        try:
            details = await tmdb.get_catalog().get_show_details(payload.tmdb_id)
            season_counts = details.season_episode_counts
            poster = poster or details.poster
        except CATALOG_ERRORS as exc:
            logger.warning("Season counts unavailable for tmdb %s: %s", payload.tmdb_id, exc)

    target = episode_after(current_season, current_episode, season_counts)
    if target is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No further episodes to queue")
    season_number, episode_number = target
    return await add_item(
        session,
        user_id,
        QueueItemCreate(
            content_id=payload.content_id or str(payload.tmdb_id),
            content_type=MediaType.TV,
            title=f"{payload.title} - S{season_number:02d}E{episode_number:02d}",
            tmdb_id=payload.tmdb_id,
            poster=poster,
            season_number=season_number,
            episode_number=episode_number,
        ),
    )


async def remove_item(session: AsyncSession, user_id: uuid.UUID, item_id: uuid.UUID) -> None:
    """Delete one entry and close the gap it leaves among unwatched entries."""
    try:
        item = await _get_owned(session, user_id, item_id)
        active = await _lock_active(session, user_id)
        await session.delete(item)
        await session.flush()
        await _write_positions(session, [entry for entry in active if entry.id != item_id])
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def reorder_item(
    session: AsyncSession, user_id: uuid.UUID, item_id: uuid.UUID, new_position: int
) -> list[QueueItem]:
    """Move one unwatched entry to ``new_position``, shifting the entries between.

    Returns the resulting queue.
    """
    try:
        item = await _get_owned(session, user_id, item_id)
        active = await _lock_active(session, user_id)
        if item.watched:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Watched items cannot be reordered")
        if new_position > len(active):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Position must be between 1 and {len(active)}",
            )
        ordered = [entry for entry in active if entry.id != item.id]
        ordered.insert(new_position - 1, item)
        await _write_positions(session, ordered)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return ordered


async def mark_watched(session: AsyncSession, user_id: uuid.UUID, item_id: uuid.UUID) -> QueueItem:
    """Move an entry to history and record the viewing in the library.

    Already-watched entries are returned unchanged.
    """
    try:
        item = await _get_owned(session, user_id, item_id)
        if item.watched:
            return item
        now = utcnow()
        active = await _lock_active(session, user_id)
        item.watched = True
        item.updated_at = now
        await _write_positions(session, [entry for entry in active if entry.id != item.id])
        await watched_item_service.sync_from_queue(session, user_id, item, now)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("User %s watched queue item %s", user_id, item_id)
    return item


async def bulk_mark_watched(session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID]) -> int:
    try:
        items = await _get_all_owned(session, user_id, ids)
        fresh = [item for item in items if not item.watched]
        fresh_ids = {item.id for item in fresh}
        now = utcnow()
        active = await _lock_active(session, user_id)
        for item in fresh:
            item.watched = True
            item.updated_at = now
        await _write_positions(session, [entry for entry in active if entry.id not in fresh_ids])
        for item in fresh:
            await watched_item_service.sync_from_queue(session, user_id, item, now)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return len(fresh)


async def bulk_remove(session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID]) -> int:
    try:
        items = await _get_all_owned(session, user_id, ids)
        doomed = {item.id for item in items}
        active = await _lock_active(session, user_id)
        for item in items:
            session.expunge(item)
        result = await session.execute(
            delete(QueueItem).where(QueueItem.id.in_(doomed)).execution_options(synchronize_session=False)
        )
        await _write_positions(session, [entry for entry in active if entry.id not in doomed])
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return result.rowcount or 0


async def _bulk_move(session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID], *, to_top: bool) -> int:
    try:
        items = await _get_all_owned(session, user_id, ids)
        if any(item.watched for item in items):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Watched items cannot be moved")
        moving = {item.id for item in items}
        active = await _lock_active(session, user_id)
        moved = [entry for entry in active if entry.id in moving]
        rest = [entry for entry in active if entry.id not in moving]
        await _write_positions(session, moved + rest if to_top else rest + moved)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return len(moved)


async def bulk_move_to_top(session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID]) -> int:
    """Move entries to the front, keeping their relative order."""
    return await _bulk_move(session, user_id, ids, to_top=True)


async def bulk_move_to_bottom(session: AsyncSession, user_id: uuid.UUID, ids: Sequence[uuid.UUID]) -> int:
    """Move entries to the back, keeping their relative order."""
    return await _bulk_move(session, user_id, ids, to_top=False)


async def _clear(session: AsyncSession, user_id: uuid.UUID, *, watched: bool) -> int:
    try:
        result = await session.execute(
            delete(QueueItem)
            .where(and_(QueueItem.user_id == user_id, QueueItem.watched.is_(watched)))
            .execution_options(synchronize_session="fetch")
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return result.rowcount or 0


async def clear_watched(session: AsyncSession, user_id: uuid.UUID) -> int:
    return await _clear(session, user_id, watched=True)


async def clear_queue(session: AsyncSession, user_id: uuid.UUID) -> int:
    """Remove every unwatched entry; history is left alone."""
    return await _clear(session, user_id, watched=False)
