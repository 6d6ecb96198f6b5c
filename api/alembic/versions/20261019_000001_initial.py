"""initial schema

Revision ID: 20261019_000001
Revises: 
Create Date: 2026-10-19 00:00:01.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


media_type_enum = postgresql.ENUM("MOVIE", "TV", name="media_type", create_type=False)
watch_status_enum = postgresql.ENUM(
    "PLANNED", "WATCHING", "COMPLETED", "PAUSED", "DROPPED", name="watch_status", create_type=False
)
episode_status_enum = postgresql.ENUM("UNWATCHED", "WATCHED", "SKIPPED", name="episode_status", create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create users, library, notes and queue tables."""
    bind = op.get_bind()
    for enum_type in (media_type_enum, watch_status_enum, episode_status_enum):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "watched_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tmdb_id", sa.Integer(), nullable=False),
        sa.Column("media_type", media_type_enum, nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("poster", sa.String(length=1024), nullable=True),
        sa.Column("release_date", sa.Date(), nullable=True),
        sa.Column("status", watch_status_enum, nullable=False, server_default="PLANNED"),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("current_season", sa.Integer(), nullable=True),
        sa.Column("current_episode", sa.Integer(), nullable=True),
        sa.Column("total_seasons", sa.Integer(), nullable=True),
        sa.Column("total_episodes", sa.Integer(), nullable=True),
        sa.Column("season_episode_counts", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("current_runtime", sa.Integer(), nullable=True),
        sa.Column("total_runtime", sa.Integer(), nullable=True),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finish_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata_refreshed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "tmdb_id", "media_type", name="uq_watched_item_user_title"),
        sa.CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 10)", name="ck_watched_item_rating_range"),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_watched_item_progress_range"),
    )
    op.create_index("ix_watched_items_user_id", "watched_items", ["user_id"])

    op.create_table(
        "watched_episodes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "watched_item_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("watched_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("season_number", sa.Integer(), nullable=False),
        sa.Column("episode_number", sa.Integer(), nullable=False),
        sa.Column("status", episode_status_enum, nullable=False, server_default="UNWATCHED"),
        sa.Column("watched_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("watched_item_id", "season_number", "episode_number", name="uq_watched_episode_key"),
    )
    op.create_index("ix_watched_episodes_watched_item_id", "watched_episodes", ["watched_item_id"])

    op.create_table(
        "notes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "watched_item_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("watched_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.String(length=32), nullable=True),
        sa.Column("season_number", sa.Integer(), nullable=True),
        sa.Column("episode_number", sa.Integer(), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_spoilers", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_notes_user_id", "notes", ["user_id"])
    op.create_index("ix_notes_watched_item_id", "notes", ["watched_item_id"])
    op.create_index("ix_notes_created_at", "notes", ["created_at"])

    op.create_table(
        "queue_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content_id", sa.String(length=64), nullable=False),
        sa.Column("content_type", media_type_enum, nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("poster", sa.String(length=1024), nullable=True),
        sa.Column("release_date", sa.Date(), nullable=True),
        sa.Column("tmdb_id", sa.Integer(), nullable=False),
        sa.Column("season_number", sa.Integer(), nullable=True),
        sa.Column("episode_number", sa.Integer(), nullable=True),
        sa.Column("episode_name", sa.String(length=500), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("watched", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_queue_items_user_position", "queue_items", ["user_id", "watched", "position"])
    op.create_index("ix_queue_items_user_content", "queue_items", ["user_id", "content_id"])


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_table("queue_items")
    op.drop_table("notes")
    op.drop_table("watched_episodes")
    op.drop_table("watched_items")
    op.drop_table("users")
    bind = op.get_bind()
    for enum_type in (episode_status_enum, watch_status_enum, media_type_enum):
        enum_type.drop(bind, checkfirst=True)
