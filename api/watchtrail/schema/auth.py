"""Authentication response schemas."""

from pydantic import BaseModel

from watchtrail.schema.user import UserRead


class Token(BaseModel):
    """Access token returned after register or login."""
    access_token: str
    token_type: str = "bearer"
    user: UserRead
