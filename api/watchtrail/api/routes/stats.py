from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from watchtrail.api.deps import get_current_user, get_db
from watchtrail.models.user import User
from watchtrail.schema.stats import NavigationCounts, StatsOverview
from watchtrail.services import stats_service

router = APIRouter()


@router.get("/navigation-counts", response_model=NavigationCounts)
async def navigation_counts(
    session: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)
) -> NavigationCounts:
    return await stats_service.navigation_counts(session, current_user.id)


@router.get("/overview", response_model=StatsOverview)
async def overview(
    session: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)
) -> StatsOverview:
    return await stats_service.overview(session, current_user.id)
