"""User endpoints for checking authentication."""
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from services.family_resolver import count_owned_families


router = APIRouter(prefix="/users", tags=["users"])


class UserResponse(BaseModel):
    """Current identity plus the number of documents it owns."""

    id: UUID
    auth0_id: str
    email: str | None
    document_count: int


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> UserResponse:
    """Get the current user and how many document families they own."""
    return UserResponse(
        id=current_user.id,
        auth0_id=current_user.auth0_id,
        email=current_user.email,
        document_count=await count_owned_families(db, current_user.id),
    )
