"""Library schemas: tracked titles, episode marks, bulk payloads and progress views."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from watchtrail.models.library import EpisodeStatus, MediaType, WatchStatus
from watchtrail.schema.base import BulkIds, ORMModel, Page, Timestamped
from watchtrail.schema.note import NoteRead


class EpisodeMarkIn(BaseModel):
    """One episode's requested status."""
    season_number: int = Field(ge=0)
    episode_number: int = Field(ge=1)
    status: EpisodeStatus


class EpisodeMarkRead(ORMModel):
    season_number: int
    episode_number: int
    status: EpisodeStatus
    watched_at: datetime | None = None


class EpisodeStatusUpdate(BaseModel):
    """Payload for the single-episode update endpoint."""
    status: EpisodeStatus


class EpisodeBulkUpdate(BaseModel):
    """Batch of episode updates; later entries win for the same episode."""
    episodes: list[EpisodeMarkIn] = Field(min_length=1)


class WatchedItemCreate(BaseModel):
    """Payload for adding a title to the library."""
    tmdb_id: int = Field(ge=1)
    media_type: MediaType
    title: str = Field(min_length=1, max_length=500)
    poster: str | None = None
    release_date: date | None = None
    status: WatchStatus = WatchStatus.PLANNED
    rating: int | None = Field(default=None, ge=1, le=10)
    total_seasons: int | None = Field(default=None, ge=0)
    total_episodes: int | None = Field(default=None, ge=0)
    total_runtime: int | None = Field(default=None, ge=0)


class WatchedItemUpdate(BaseModel):
    """Partial update; only fields present in the request are applied.

    ``watched_episodes`` replaces the whole episode set when supplied.
    """
    status: WatchStatus | None = None
    rating: int | None = Field(default=None, ge=1, le=10)
    current_season: int | None = Field(default=None, ge=0)
    current_episode: int | None = Field(default=None, ge=0)
    current_runtime: int | None = Field(default=None, ge=0)
    total_runtime: int | None = Field(default=None, ge=0)
    total_seasons: int | None = Field(default=None, ge=0)
    total_episodes: int | None = Field(default=None, ge=0)
    start_date: datetime | None = None
    finish_date: datetime | None = None
    watched_episodes: list[EpisodeMarkIn] | None = None


class WatchedItemRead(Timestamped):
    """Tracked title as returned by list and mutation endpoints."""
    tmdb_id: int
    media_type: MediaType
    title: str
    poster: str | None = None
    release_date: date | None = None
    status: WatchStatus
    rating: int | None = None
    current_season: int | None = None
    current_episode: int | None = None
    total_seasons: int | None = None
    total_episodes: int | None = None
    season_episode_counts: dict[str, int] | None = None
    current_runtime: int | None = None
    total_runtime: int | None = None
    progress: int
    start_date: datetime | None = None
    finish_date: datetime | None = None
    metadata_missing: bool
    episodes: list[EpisodeMarkRead] = Field(default_factory=list)


class WatchedItemDetail(WatchedItemRead):
    notes: list[NoteRead] = Field(default_factory=list)


class WatchedItemPage(Page):
    items: list[WatchedItemRead]


class WatchedItemSearchResult(BaseModel):
    items: list[WatchedItemRead]
    count: int
    query: str


class BulkStatusUpdate(BulkIds):
    status: WatchStatus


class BulkRatingUpdate(BulkIds):
    """Set or clear (null) the rating on several titles."""
    rating: int | None = Field(default=None, ge=1, le=10)


class BulkDatesUpdate(BulkIds):
    start_date: datetime | None = None
    finish_date: datetime | None = None


class EpisodeRef(BaseModel):
    season_number: int
    episode_number: int


class SeasonProgressRead(BaseModel):
    season_number: int
    episode_count: int
    watched: int
    skipped: int
    remaining: int
    percentage: int


class ProgressSummary(BaseModel):
    """Episode progress breakdown for one show."""
    watched_item_id: UUID
    watched: int
    skipped: int
    remaining: int
    total_episodes: int | None = None
    percentage: int
    metadata_missing: bool
    next_episode: EpisodeRef | None = None
    seasons: list[SeasonProgressRead] = Field(default_factory=list)


class RefreshFailure(BaseModel):
    watched_item_id: UUID
    title: str
    error: str


class RefreshResult(BaseModel):
    """Outcome of refreshing catalog details for one or more shows."""
    updated: int = 0
    failed: int = 0
    errors: list[RefreshFailure] = Field(default_factory=list)
