from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from watchtrail.api.deps import ACCESS_COOKIE_NAME, get_db
from watchtrail.core.config import settings
from watchtrail.core.security import create_access_token
from watchtrail.schema.auth import Token
from watchtrail.schema.user import UserCreate, UserLogin, UserRead
from watchtrail.models.user import User
from watchtrail.services import user_service

router = APIRouter()


def set_auth_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        ACCESS_COOKIE_NAME,
        access_token,
        max_age=settings.access_token_expires_minutes * 60,
        httponly=True,
        samesite="lax",
        secure=settings.environment.lower() == "production",
        path="/",
    )


def _token_response(response: Response, user: User) -> Token:
    token = Token(access_token=create_access_token(str(user.id)), user=UserRead.model_validate(user))
    set_auth_cookie(response, token.access_token)
    return token


@router.post("/register", response_model=Token)
async def register(payload: UserCreate, response: Response, session: AsyncSession = Depends(get_db)) -> Token:
    user = await user_service.create_user(
        session, email=payload.email, password=payload.password, display_name=payload.display_name
    )
    return _token_response(response, user)


@router.post("/login", response_model=Token)
async def login(payload: UserLogin, response: Response, session: AsyncSession = Depends(get_db)) -> Token:
    user = await user_service.authenticate_user(session, payload.email, payload.password)
    return _token_response(response, user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def logout(response: Response) -> Response:
    response.delete_cookie(ACCESS_COOKIE_NAME, path="/")
    response.status_code = status.HTTP_204_NO_CONTENT
    return response
