from typing import Optional

from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.auth_bearer import JWTBearer
from machinebio.core.db import get_db
from machinebio.models.user import User


async def get_current_user(
    payload: dict = Depends(JWTBearer()),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await db.get(User, payload.get("user_id"))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found for token")
    return user


async def get_optional_user(
    payload: Optional[dict] = Depends(JWTBearer(auto_error=False)),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """The signed-in user, or None for anonymous viewers."""
    if payload is None:
        return None
    return await db.get(User, payload.get("user_id"))
