"""Upcoming episodes and movie releases for titles in a user's library."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from watchtrail.catalog import CATALOG_ERRORS, tmdb
from watchtrail.catalog.tmdb import SeasonDetails
from watchtrail.models.library import MediaType, WatchedItem, WatchStatus
from watchtrail.schema.releases import UpcomingRelease, UpcomingReleases
from watchtrail.utils.datetime import utcnow

logger = logging.getLogger("watchtrail.services.releases")


async def _latest_season(item_tmdb_id: int) -> SeasonDetails | None:
    catalog = tmdb.get_catalog()
    show = await catalog.get_show_details(item_tmdb_id)
    if not show.season_episode_counts:
        return None
    return await catalog.get_season_details(item_tmdb_id, max(show.season_episode_counts))


async def upcoming_releases(session: AsyncSession, user_id: uuid.UUID, *, days: int) -> UpcomingReleases:
    """Episodes and movies releasing between today and ``days`` from now.

    Implementation notes:
    - Season lookups for every tracked show run concurrently.
    - A show whose lookup fails is logged and left out of the result.
    - Movies use their stored release date; no catalog call is made.
    """
    today = utcnow().date()
    until = today + timedelta(days=days)
    result = await session.execute(
        select(WatchedItem).where(WatchedItem.user_id == user_id, WatchedItem.status != WatchStatus.DROPPED)
    )
    items = list(result.scalars().all())
    shows = [item for item in items if item.media_type == MediaType.TV]

    releases: list[UpcomingRelease] = [
        UpcomingRelease(
            watched_item_id=item.id,
            tmdb_id=item.tmdb_id,
            media_type=item.media_type,
            title=item.title,
            poster=item.poster,
            air_date=item.release_date,
        )
        for item in items
        if item.media_type == MediaType.MOVIE and _in_window(item.release_date, today, until)
    ]

    seasons = await asyncio.gather(*(_latest_season(show.tmdb_id) for show in shows), return_exceptions=True)
    for show, season in zip(shows, seasons):
        if isinstance(season, CATALOG_ERRORS):
            logger.warning("Skipping upcoming episodes for %s (tmdb %s): %s", show.title, show.tmdb_id, season)
            continue
        if isinstance(season, BaseException):
            raise season
        if season is None:
            continue
        releases.extend(
            UpcomingRelease(
                watched_item_id=show.id,
                tmdb_id=show.tmdb_id,
                media_type=show.media_type,
                title=show.title,
                poster=show.poster,
                air_date=episode.air_date,
                season_number=episode.season_number,
                episode_number=episode.episode_number,
                episode_name=episode.name,
            )
            for episode in season.episodes
            if _in_window(episode.air_date, today, until)
        )

    releases.sort(key=lambda release: (release.air_date, release.title, release.episode_number or 0))
    return UpcomingReleases(days=days, items=releases)


def _in_window(value: date | None, start: date, end: date) -> bool:
    return value is not None and start <= value <= end
