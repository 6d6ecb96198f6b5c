"""Note endpoints; listing lives under the library item routes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from watchtrail.api.deps import get_current_user, get_db
from watchtrail.models.library import Note
from watchtrail.models.user import User
from watchtrail.schema.note import NoteCreate, NoteRead, NoteUpdate
from watchtrail.services import note_service

router = APIRouter()


@router.post("", response_model=NoteRead, status_code=status.HTTP_201_CREATED)
async def create_note(
    payload: NoteCreate,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Note:
    return await note_service.create_note(session, current_user.id, payload)


@router.patch("/{note_id}", response_model=NoteRead)
async def update_note(
    note_id: uuid.UUID,
    payload: NoteUpdate,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Note:
    note = await note_service.get_note(session, current_user.id, note_id)
    return await note_service.update_note(session, note, payload)


@router.delete(
    "/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    response_model=None,
)
async def delete_note(
    note_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    note = await note_service.get_note(session, current_user.id, note_id)
    await note_service.delete_note(session, note)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
