"""Aggregate counts for navigation badges and the statistics page."""

from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from watchtrail.models.library import EpisodeStatus, WatchedEpisode, WatchedItem, WatchStatus
from watchtrail.schema.stats import NavigationCounts, StatsOverview
from watchtrail.services import note_service, queue_service, watched_item_service
from watchtrail.utils.datetime import utcnow


async def navigation_counts(session: AsyncSession, user_id: uuid.UUID) -> NavigationCounts:
    return NavigationCounts(
        queue=await queue_service.count_queue(session, user_id),
        library=await watched_item_service.count_items(session, user_id),
        notes=await note_service.count_notes(session, user_id),
    )


async def overview(session: AsyncSession, user_id: uuid.UUID) -> StatsOverview:
    """Library totals by status and media type plus viewing activity."""
    by_status_rows = await session.execute(
        select(WatchedItem.status, func.count(WatchedItem.id))
        .where(WatchedItem.user_id == user_id)
        .group_by(WatchedItem.status)
    )
    by_status = {status.value: 0 for status in WatchStatus}
    by_status.update({row[0].value: int(row[1]) for row in by_status_rows.all()})

    by_type_rows = await session.execute(
        select(WatchedItem.media_type, func.count(WatchedItem.id))
        .where(WatchedItem.user_id == user_id)
        .group_by(WatchedItem.media_type)
    )
    by_media_type = {row[0].value: int(row[1]) for row in by_type_rows.all()}

    episodes_watched = await session.execute(
        select(func.count(WatchedEpisode.id))
        .join(WatchedItem, WatchedItem.id == WatchedEpisode.watched_item_id)
        .where(WatchedItem.user_id == user_id, WatchedEpisode.status == EpisodeStatus.WATCHED)
    )
    average_rating = await session.execute(
        select(func.avg(WatchedItem.rating)).where(WatchedItem.user_id == user_id, WatchedItem.rating.is_not(None))
    )
    month_start = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    completed = await session.execute(
        select(func.count(WatchedItem.id)).where(
            WatchedItem.user_id == user_id,
            WatchedItem.status == WatchStatus.COMPLETED,
            WatchedItem.finish_date >= month_start,
        )
    )
    avg = average_rating.scalar_one()
    return StatsOverview(
        total_items=sum(by_status.values()),
        by_status=by_status,
        by_media_type=by_media_type,
        episodes_watched=int(episodes_watched.scalar_one()),
        average_rating=round(float(avg), 2) if avg is not None else None,
        completed_this_month=int(completed.scalar_one()),
    )
