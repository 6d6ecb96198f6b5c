"""Watch queue schemas."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from watchtrail.models.library import MediaType
from watchtrail.schema.base import ORMModel


class QueueItemCreate(BaseModel):
    """Payload for queueing a movie, a show, or one episode of a show."""
    content_id: str = Field(min_length=1, max_length=64)
    content_type: MediaType
    title: str = Field(min_length=1, max_length=500)
    tmdb_id: int = Field(ge=1)
    poster: str | None = None
    release_date: date | None = None
    season_number: int | None = Field(default=None, ge=0)
    episode_number: int | None = Field(default=None, ge=1)
    episode_name: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _episode_fields_pair_up(self) -> "QueueItemCreate":
        if (self.season_number is None) != (self.episode_number is None):
            raise ValueError("season_number and episode_number must be provided together")
        if self.episode_number is not None and self.content_type != MediaType.TV:
            raise ValueError("Only TV entries may reference an episode")
        return self


class NextEpisodeCreate(BaseModel):
    """Queue the episode after a show's current pointer.

    When no pointer is given, the tracked title's stored pointer is used.
    """
    tmdb_id: int = Field(ge=1)
    title: str = Field(min_length=1, max_length=500)
    content_id: str | None = Field(default=None, max_length=64)
    poster: str | None = None
    current_season: int | None = Field(default=None, ge=0)
    current_episode: int | None = Field(default=None, ge=0)


class QueueReorder(BaseModel):
    position: int = Field(ge=1)


class QueueItemRead(ORMModel):
    id: UUID
    content_id: str
    content_type: MediaType
    title: str
    poster: str | None = None
    release_date: date | None = None
    tmdb_id: int
    season_number: int | None = None
    episode_number: int | None = None
    episode_name: str | None = None
    position: int
    watched: bool
    added_at: datetime
    updated_at: datetime
