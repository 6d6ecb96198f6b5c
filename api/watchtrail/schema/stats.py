"""Aggregate statistics schemas."""

from pydantic import BaseModel, Field


class NavigationCounts(BaseModel):
    """Badge counts shown next to navigation entries."""
    queue: int
    library: int
    notes: int


class StatsOverview(BaseModel):
    total_items: int
    by_status: dict[str, int] = Field(default_factory=dict)
    by_media_type: dict[str, int] = Field(default_factory=dict)
    episodes_watched: int
    average_rating: float | None = None
    completed_this_month: int
