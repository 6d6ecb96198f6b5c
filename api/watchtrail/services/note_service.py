"""Note CRUD scoped to the owning user."""

from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from watchtrail.models.library import Note, WatchedItem
from watchtrail.schema.note import NoteCreate, NoteUpdate
from watchtrail.services.access import ensure_owned
from watchtrail.utils.pagination import paginate_newest_first, split_page


async def _owned_watched_item(session: AsyncSession, user_id: uuid.UUID, watched_item_id: uuid.UUID) -> WatchedItem:
    item = await session.get(WatchedItem, watched_item_id)
    if not item or item.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Watched item not found")
    return item


async def create_note(session: AsyncSession, user_id: uuid.UUID, payload: NoteCreate) -> Note:
    await _owned_watched_item(session, user_id, payload.watched_item_id)
    note = Note(user_id=user_id, **payload.model_dump())
    session.add(note)
    await session.commit()
    await session.refresh(note)
    return note


async def list_notes(
    session: AsyncSession,
    user_id: uuid.UUID,
    watched_item_id: uuid.UUID,
    *,
    limit: int = 50,
    cursor: str | None = None,
) -> tuple[list[Note], str | None]:
    """Notes for one tracked title, newest first."""
    await _owned_watched_item(session, user_id, watched_item_id)
    query = select(Note).where(Note.user_id == user_id, Note.watched_item_id == watched_item_id)
    query = paginate_newest_first(query, Note.created_at, Note.id, limit=limit, cursor=cursor)
    result = await session.execute(query)
    return split_page(list(result.scalars().all()), limit)


async def get_note(session: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID) -> Note:
    return ensure_owned(await session.get(Note, note_id), user_id, noun="Note")


async def update_note(session: AsyncSession, note: Note, payload: NoteUpdate) -> Note:
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field in {"content", "is_public", "has_spoilers"}:
            continue
        setattr(note, field, value)
    await session.commit()
    await session.refresh(note)
    return note


async def delete_note(session: AsyncSession, note: Note) -> None:
    await session.delete(note)
    await session.commit()


async def count_notes(session: AsyncSession, user_id: uuid.UUID) -> int:
    result = await session.execute(select(func.count(Note.id)).where(Note.user_id == user_id))
    return int(result.scalar_one())
