"""Current-user endpoints."""

from fastapi import APIRouter, Depends

from watchtrail.api.deps import get_current_user
from watchtrail.models.user import User
from watchtrail.schema.user import UserRead

router = APIRouter()


@router.get("/me", response_model=UserRead)
async def read_current_user(current_user: User = Depends(get_current_user)) -> User:
    """Return the current authenticated user."""
    return current_user
