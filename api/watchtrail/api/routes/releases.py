from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from watchtrail.api.deps import get_current_user, get_db
from watchtrail.core.config import settings
from watchtrail.models.user import User
from watchtrail.schema.releases import UpcomingReleases
from watchtrail.services import release_service

router = APIRouter()


@router.get("/upcoming", response_model=UpcomingReleases)
async def upcoming(
    days: int | None = Query(default=None, ge=1, le=365),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UpcomingReleases:
    """Episodes and movies releasing in the next ``days`` days."""
    return await release_service.upcoming_releases(
        session, current_user.id, days=days or settings.upcoming_release_days
    )
