"""Library models: tracked titles, per-episode marks, and notes."""

from __future__ import annotations

import enum
import typing
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from watchtrail.db.base_class import JSON_COMPATIBLE, Base
from watchtrail.utils.datetime import utcnow

if typing.TYPE_CHECKING:  # pragma: no cover
    from watchtrail.models.user import User


class MediaType(str, enum.Enum):
    """Catalog categories a user can track."""
    MOVIE = "MOVIE"
    TV = "TV"


class WatchStatus(str, enum.Enum):
    """Tracking statuses; any status may follow any other."""
    PLANNED = "PLANNED"
    WATCHING = "WATCHING"
    COMPLETED = "COMPLETED"
    PAUSED = "PAUSED"
    DROPPED = "DROPPED"


class EpisodeStatus(str, enum.Enum):
    """Per-episode marks. UNWATCHED is equivalent to having no row."""
    UNWATCHED = "UNWATCHED"
    WATCHED = "WATCHED"
    SKIPPED = "SKIPPED"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class WatchedItem(Base):
    """A user's tracking record for one movie or TV show."""
    __tablename__ = "watched_items"
    __table_args__ = (
        UniqueConstraint("user_id", "tmdb_id", "media_type", name="uq_watched_item_user_title"),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 10)", name="ck_watched_item_rating_range"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_watched_item_progress_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tmdb_id: Mapped[int] = mapped_column(Integer, nullable=False)
    media_type: Mapped[MediaType] = mapped_column(
        Enum(MediaType, name="media_type", values_callable=_enum_values), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    poster: Mapped[str | None] = mapped_column(String(1024))
    release_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[WatchStatus] = mapped_column(
        Enum(WatchStatus, name="watch_status", values_callable=_enum_values),
        nullable=False,
        default=WatchStatus.PLANNED,
    )
    rating: Mapped[int | None] = mapped_column(Integer)
    current_season: Mapped[int | None] = mapped_column(Integer)
    current_episode: Mapped[int | None] = mapped_column(Integer)
    total_seasons: Mapped[int | None] = mapped_column(Integer)
    total_episodes: Mapped[int | None] = mapped_column(Integer)
    # Season number (as a string key) -> episode count, from the catalog.
    season_episode_counts: Mapped[dict | None] = mapped_column(JSON_COMPATIBLE)
    current_runtime: Mapped[int | None] = mapped_column(Integer)
    total_runtime: Mapped[int | None] = mapped_column(Integer)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finish_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    metadata_refreshed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user: Mapped["User"] = relationship(back_populates="watched_items")
    episodes: Mapped[list["WatchedEpisode"]] = relationship(
        back_populates="watched_item",
        cascade="all, delete-orphan",
        order_by=lambda: [WatchedEpisode.season_number, WatchedEpisode.episode_number],
    )
    notes: Mapped[list["Note"]] = relationship(
        back_populates="watched_item", cascade="all, delete-orphan", order_by=lambda: Note.created_at.desc()
    )

    @property
    def metadata_missing(self) -> bool:
        """True when a show's episode total was never fetched from the catalog."""
        return self.media_type == MediaType.TV and self.total_episodes is None

    @property
    def season_counts(self) -> dict[int, int]:
        """Season episode counts keyed by integer season number."""
        raw = self.season_episode_counts or {}
        return {int(season): int(count) for season, count in raw.items()}


class WatchedEpisode(Base):
    """A user's explicit mark on one episode of a tracked show."""
    __tablename__ = "watched_episodes"
    __table_args__ = (
        UniqueConstraint("watched_item_id", "season_number", "episode_number", name="uq_watched_episode_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    watched_item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("watched_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    season_number: Mapped[int] = mapped_column(Integer, nullable=False)
    episode_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[EpisodeStatus] = mapped_column(
        Enum(EpisodeStatus, name="episode_status", values_callable=_enum_values),
        nullable=False,
        default=EpisodeStatus.UNWATCHED,
    )
    watched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    watched_item: Mapped[WatchedItem] = relationship(back_populates="episodes")


class Note(Base):
    """Timestamped free-form note attached to a tracked title."""
    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    watched_item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("watched_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[str | None] = mapped_column(String(32))
    season_number: Mapped[int | None] = mapped_column(Integer)
    episode_number: Mapped[int | None] = mapped_column(Integer)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    has_spoilers: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user: Mapped["User"] = relationship(back_populates="notes")
    watched_item: Mapped[WatchedItem] = relationship(back_populates="notes")
