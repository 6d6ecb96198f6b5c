"""Note schemas for request/response payloads."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field

from watchtrail.schema.base import Page, Timestamped


class NoteCreate(BaseModel):
    """Payload for attaching a note to a tracked title."""
    watched_item_id: UUID
    content: str = Field(min_length=1)
    timestamp: str | None = Field(default=None, max_length=32)
    season_number: int | None = Field(default=None, ge=0)
    episode_number: int | None = Field(default=None, ge=1)
    is_public: bool = False
    has_spoilers: bool = False


class NoteUpdate(BaseModel):
    content: str | None = Field(default=None, min_length=1)
    timestamp: str | None = Field(default=None, max_length=32)
    is_public: bool | None = None
    has_spoilers: bool | None = None


class NoteRead(Timestamped):
    """Note representation returned by the API."""
    watched_item_id: UUID
    content: str
    timestamp: str | None = None
    season_number: int | None = None
    episode_number: int | None = None
    is_public: bool
    has_spoilers: bool


class NotePage(Page):
    items: list[NoteRead]
