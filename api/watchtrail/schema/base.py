"""Shared schema base classes for API responses."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class ORMModel(BaseModel):
    """Base model that reads attributes straight off SQLAlchemy rows."""

    model_config = {"from_attributes": True}


class Timestamped(ORMModel):
    """Common identity and timestamps for resource schemas."""
    id: UUID
    created_at: datetime
    updated_at: datetime


class Page(BaseModel):
    """Cursor pagination envelope; ``next_cursor`` is None on the last page."""
    next_cursor: str | None = None


class BulkIds(BaseModel):
    """Ids for a bulk operation; duplicates are ignored."""
    ids: list[UUID] = Field(min_length=1)


class UpdatedCount(BaseModel):
    updated_count: int


class DeletedCount(BaseModel):
    deleted_count: int
