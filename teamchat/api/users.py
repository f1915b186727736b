from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from teamchat.core.security import get_current_active_user
from teamchat.database import get_db
from teamchat.models.user import User
from teamchat.schemas.user import UserSummary

router = APIRouter()


@router.get("", response_model=List[UserSummary])
async def list_users_endpoint(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """User directory, used for mentions and starting conversations."""
    result = await db.execute(select(User).order_by(User.name))
    return result.scalars().all()

@router.get("/me", response_model=UserSummary)
async def read_current_user(current_user: User = Depends(get_current_active_user)):
    return current_user
