"""Library endpoints: tracked titles, episode progress and catalog refreshes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from watchtrail.api.deps import get_current_user, get_db
from watchtrail.models.library import MediaType, WatchedItem, WatchStatus
from watchtrail.models.user import User
from watchtrail.schema.base import BulkIds, DeletedCount, UpdatedCount
from watchtrail.schema.library import (
    BulkDatesUpdate,
    BulkRatingUpdate,
    BulkStatusUpdate,
    EpisodeBulkUpdate,
    EpisodeStatusUpdate,
    ProgressSummary,
    RefreshResult,
    WatchedItemCreate,
    WatchedItemDetail,
    WatchedItemPage,
    WatchedItemRead,
    WatchedItemSearchResult,
    WatchedItemUpdate,
)
from watchtrail.schema.note import NotePage, NoteRead
from watchtrail.services import note_service, watched_item_service
from watchtrail.services.task_queue import task_queue
from watchtrail.tracking.reconcile import EpisodeUpdate

router = APIRouter()


@router.get("/items", response_model=WatchedItemPage)
async def list_items(
    status_filter: WatchStatus | None = Query(default=None, alias="status"),
    media_type: MediaType | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    cursor: str | None = Query(default=None),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> WatchedItemPage:
    """List the current user's library, newest first."""
    items, next_cursor = await watched_item_service.list_items(
        session, current_user.id, status_filter=status_filter, media_type=media_type, limit=limit, cursor=cursor
    )
    return WatchedItemPage(items=[WatchedItemRead.model_validate(item) for item in items], next_cursor=next_cursor)


@router.get("/items/search", response_model=WatchedItemSearchResult)
async def search_items(
    q: str = Query(min_length=1, max_length=100),
    status_filter: WatchStatus | None = Query(default=None, alias="status"),
    media_type: MediaType | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=50),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> WatchedItemSearchResult:
    items = await watched_item_service.search_items(
        session, current_user.id, q, status_filter=status_filter, media_type=media_type, limit=limit
    )
    return WatchedItemSearchResult(
        items=[WatchedItemRead.model_validate(item) for item in items], count=len(items), query=q
    )


@router.post("/items", response_model=WatchedItemRead, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: WatchedItemCreate,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> WatchedItem:
    return await watched_item_service.create_item(session, current_user.id, payload)


@router.post("/items/bulk/status", response_model=UpdatedCount)
async def bulk_status(
    payload: BulkStatusUpdate,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UpdatedCount:
    count = await watched_item_service.bulk_update_status(session, current_user.id, payload.ids, payload.status)
    return UpdatedCount(updated_count=count)


@router.post("/items/bulk/rating", response_model=UpdatedCount)
async def bulk_rating(
    payload: BulkRatingUpdate,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UpdatedCount:
    count = await watched_item_service.bulk_update_rating(session, current_user.id, payload.ids, payload.rating)
    return UpdatedCount(updated_count=count)


@router.post("/items/bulk/dates", response_model=UpdatedCount)
async def bulk_dates(
    payload: BulkDatesUpdate,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UpdatedCount:
    """Set start and/or finish dates; omitted fields are left alone, null clears."""
    dates = payload.model_dump(include={"start_date", "finish_date"}, exclude_unset=True)
    count = await watched_item_service.bulk_update_dates(session, current_user.id, payload.ids, dates)
    return UpdatedCount(updated_count=count)


@router.post("/items/bulk/delete", response_model=DeletedCount)
async def bulk_delete(
    payload: BulkIds,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DeletedCount:
    count = await watched_item_service.bulk_delete(session, current_user.id, payload.ids)
    return DeletedCount(deleted_count=count)


@router.post("/items/refresh-details", response_model=RefreshResult)
async def refresh_all_details(
    only_missing: bool = Query(default=False),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> RefreshResult:
    """Refresh catalog totals for every show in the library."""
    result = await task_queue.enqueue_metadata_refresh(
        user_id=current_user.id,
        only_missing=only_missing,
        fallback=lambda: watched_item_service.refresh_all_details(
            session, current_user.id, only_missing=only_missing
        ),
    )
    return RefreshResult.model_validate(result)


@router.get("/items/{item_id}", response_model=WatchedItemDetail)
async def get_item(
    item_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> WatchedItem:
    return await watched_item_service.get_item(session, current_user.id, item_id, with_notes=True)


@router.patch("/items/{item_id}", response_model=WatchedItemRead)
async def update_item(
    item_id: uuid.UUID,
    payload: WatchedItemUpdate,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> WatchedItem:
    """Partially update a title; ``watched_episodes`` replaces the episode set."""
    item = await watched_item_service.get_item(session, current_user.id, item_id)
    return await watched_item_service.update_watched_item(session, item, payload)


@router.delete(
    "/items/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    response_model=None,
)
async def delete_item(
    item_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    item = await watched_item_service.get_item(session, current_user.id, item_id)
    await watched_item_service.delete_item(session, item)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/items/{item_id}/episodes/{season_number}/{episode_number}", response_model=WatchedItemRead)
async def update_episode(
    item_id: uuid.UUID,
    payload: EpisodeStatusUpdate,
    season_number: int = Path(ge=0),
    episode_number: int = Path(ge=1),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> WatchedItem:
    """Set one episode's status and move the progress pointer to it."""
    item = await watched_item_service.get_item(session, current_user.id, item_id)
    return await watched_item_service.update_episode_status(
        session, item, season_number, episode_number, payload.status
    )


@router.post("/items/{item_id}/episodes/bulk", response_model=WatchedItemRead)
async def bulk_update_episodes(
    item_id: uuid.UUID,
    payload: EpisodeBulkUpdate,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> WatchedItem:
    item = await watched_item_service.get_item(session, current_user.id, item_id)
    updates = [EpisodeUpdate(mark.season_number, mark.episode_number, mark.status) for mark in payload.episodes]
    return await watched_item_service.bulk_update_episodes(session, item, updates)


@router.get("/items/{item_id}/progress", response_model=ProgressSummary)
async def get_progress(
    item_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ProgressSummary:
    item = await watched_item_service.get_item(session, current_user.id, item_id)
    return watched_item_service.progress_summary(item)


@router.post("/items/{item_id}/refresh-details", response_model=WatchedItemRead)
async def refresh_item_details(
    item_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> WatchedItem:
    item = await watched_item_service.get_item(session, current_user.id, item_id)
    return await watched_item_service.refresh_show_details(session, item)


@router.get("/items/{item_id}/notes", response_model=NotePage)
async def list_item_notes(
    item_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=200),
    cursor: str | None = Query(default=None),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotePage:
    notes, next_cursor = await note_service.list_notes(session, current_user.id, item_id, limit=limit, cursor=cursor)
    return NotePage(items=[NoteRead.model_validate(note) for note in notes], next_cursor=next_cursor)
