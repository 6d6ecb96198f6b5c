"""Upcoming release schemas."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, Field

from watchtrail.models.library import MediaType


class UpcomingRelease(BaseModel):
    watched_item_id: UUID
    tmdb_id: int
    media_type: MediaType
    title: str
    poster: str | None = None
    air_date: date
    season_number: int | None = None
    episode_number: int | None = None
    episode_name: str | None = None


class UpcomingReleases(BaseModel):
    """Releases within the window, soonest first."""
    days: int
    items: list[UpcomingRelease] = Field(default_factory=list)
