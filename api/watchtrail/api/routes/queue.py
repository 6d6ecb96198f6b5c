"""Watch queue endpoints.

Static paths are declared before ``/{item_id}`` routes so they are not
captured as ids.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from watchtrail.api.deps import get_current_user, get_db
from watchtrail.models.queue import QueueItem
from watchtrail.models.user import User
from watchtrail.schema.base import BulkIds, DeletedCount, UpdatedCount
from watchtrail.schema.queue import NextEpisodeCreate, QueueItemCreate, QueueItemRead, QueueReorder
from watchtrail.services import queue_service

router = APIRouter()


@router.get("", response_model=list[QueueItemRead])
async def get_queue(
    session: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)
) -> list[QueueItem]:
    """Unwatched entries in queue order."""
    return await queue_service.get_queue(session, current_user.id)


@router.get("/history", response_model=list[QueueItemRead])
async def get_history(
    limit: int = Query(default=100, ge=1, le=500),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[QueueItem]:
    return await queue_service.get_history(session, current_user.id, limit=limit)


@router.post("", response_model=QueueItemRead, status_code=status.HTTP_201_CREATED)
async def add_to_queue(
    payload: QueueItemCreate,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> QueueItem:
    return await queue_service.add_item(session, current_user.id, payload)


@router.post("/next-episode", response_model=QueueItemRead, status_code=status.HTTP_201_CREATED)
async def add_next_episode(
    payload: NextEpisodeCreate,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> QueueItem:
    return await queue_service.add_next_episode(session, current_user.id, payload)


@router.post("/bulk/watched", response_model=UpdatedCount)
async def bulk_mark_watched(
    payload: BulkIds,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UpdatedCount:
    count = await queue_service.bulk_mark_watched(session, current_user.id, payload.ids)
    return UpdatedCount(updated_count=count)


@router.post("/bulk/remove", response_model=DeletedCount)
async def bulk_remove(
    payload: BulkIds,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DeletedCount:
    count = await queue_service.bulk_remove(session, current_user.id, payload.ids)
    return DeletedCount(deleted_count=count)


@router.post("/bulk/move-to-top", response_model=UpdatedCount)
async def bulk_move_to_top(
    payload: BulkIds,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UpdatedCount:
    count = await queue_service.bulk_move_to_top(session, current_user.id, payload.ids)
    return UpdatedCount(updated_count=count)


@router.post("/bulk/move-to-bottom", response_model=UpdatedCount)
async def bulk_move_to_bottom(
    payload: BulkIds,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UpdatedCount:
    count = await queue_service.bulk_move_to_bottom(session, current_user.id, payload.ids)
    return UpdatedCount(updated_count=count)


@router.delete("/watched", response_model=DeletedCount)
async def clear_watched(
    session: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)
) -> DeletedCount:
    return DeletedCount(deleted_count=await queue_service.clear_watched(session, current_user.id))


@router.delete("", response_model=DeletedCount)
async def clear_queue(
    session: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)
) -> DeletedCount:
    """Remove every unwatched entry."""
    return DeletedCount(deleted_count=await queue_service.clear_queue(session, current_user.id))


@router.delete(
    "/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    response_model=None,
)
async def remove_from_queue(
    item_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    await queue_service.remove_item(session, current_user.id, item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{item_id}/reorder", response_model=list[QueueItemRead])
async def reorder(
    item_id: uuid.UUID,
    payload: QueueReorder,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[QueueItem]:
    """Move one entry to a new position and return the resulting queue."""
    return await queue_service.reorder_item(session, current_user.id, item_id, payload.position)


@router.post("/{item_id}/watched", response_model=QueueItemRead)
async def mark_watched(
    item_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> QueueItem:
    return await queue_service.mark_watched(session, current_user.id, item_id)
