"""Watch queue model: an ordered list of movies and episodes to watch next."""

from __future__ import annotations

import typing
import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from watchtrail.db.base_class import Base
from watchtrail.models.library import MediaType
from watchtrail.utils.datetime import utcnow

if typing.TYPE_CHECKING:  # pragma: no cover
    from watchtrail.models.user import User


class QueueItem(Base):
    """Queued movie, show, or specific episode.

    Invariants:
    - Positions of a user's unwatched items are exactly 1..N.
    - Watched items keep their last position and are never renumbered.
    - (user, content, season, episode) is unique; enforced by the service
      layer because NULL season/episode values defeat a table constraint.
    """
    __tablename__ = "queue_items"
    __table_args__ = (
        Index("ix_queue_items_user_position", "user_id", "watched", "position"),
        Index("ix_queue_items_user_content", "user_id", "content_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content_type: Mapped[MediaType] = mapped_column(
        Enum(MediaType, name="media_type", values_callable=lambda enum_cls: [e.value for e in enum_cls]),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    poster: Mapped[str | None] = mapped_column(String(1024))
    release_date: Mapped[date | None] = mapped_column(Date)
    tmdb_id: Mapped[int] = mapped_column(Integer, nullable=False)
    season_number: Mapped[int | None] = mapped_column(Integer)
    episode_number: Mapped[int | None] = mapped_column(Integer)
    episode_name: Mapped[str | None] = mapped_column(String(500))
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    watched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user: Mapped["User"] = relationship(back_populates="queue_items")

    @property
    def is_episode(self) -> bool:
        return self.season_number is not None and self.episode_number is not None
