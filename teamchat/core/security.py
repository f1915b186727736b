from typing import Optional

from fastapi import Cookie, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models.user import User
from .exceptions import UnauthorizedException


async def get_current_active_user(
    session_user: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Resolve the user named by the session cookie.

    The cookie is issued by the surrounding application's login flow; this
    service only trusts it to name an existing user.
    """
    if not session_user:
        raise UnauthorizedException()

    result = await db.execute(select(User).where(User.id == session_user))
    user = result.scalar_one_or_none()
    if not user:
        raise UnauthorizedException("Session user not found")
    return user


async def get_current_user_id(current_user: User = Depends(get_current_active_user)) -> str:
    return current_user.id
