import logging
import math
from typing import Dict, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.rbac import Permission, Role, has_permission
from machinebio.core.metrics import track_performance
from machinebio.models.car import Car
from machinebio.models.spot import Spot
from machinebio.models.user import User
from machinebio.services.exceptions import (
    ValidationError,
    NotFoundError,
    ForbiddenError,
    DatabaseQueryError,
)

logger = logging.getLogger(__name__)

MAX_USERS_PAGE = 100


def serialize_user(user: User) -> Dict:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "name": user.name,
        "country": user.country,
        "role": user.role,
        "created_at": user.created_at,
    }


class UserAdminService:
    """User administration: listing, profile fixes and role changes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_user_or_404(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.")
        return user

    async def list_users(
        self,
        search: Optional[str] = None,
        role: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict:
        page = max(page, 1)
        limit = max(1, min(limit, MAX_USERS_PAGE))

        conditions = []
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            conditions.append(or_(
                func.lower(User.username).like(pattern),
                func.lower(User.name).like(pattern),
                func.lower(User.email).like(pattern),
            ))
        if role:
            conditions.append(User.role == role)

        total = (await self.db.execute(select(func.count(User.id)).where(*conditions))).scalar_one()
        users = (
            await self.db.execute(
                select(User)
                .where(*conditions)
                .order_by(User.created_at.desc(), User.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).scalars().all()

        return {
            "users": [serialize_user(user) for user in users],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }

    async def get_user(self, user_id: int) -> Dict:
        user = await self._get_user_or_404(user_id)
        car_count = (
            await self.db.execute(select(func.count(Car.id)).where(Car.owner_id == user_id))
        ).scalar_one()
        spot_count = (
            await self.db.execute(select(func.count(Spot.id)).where(Spot.spotter_id == user_id))
        ).scalar_one()
        return {**serialize_user(user), "car_count": car_count, "spot_count": spot_count}

    @track_performance(service_name="UserAdminService")
    async def update_user(
        self,
        user_id: int,
        caller_id: int,
        caller_role: str,
        **changes,
    ) -> User:
        """Apply profile fixes and, for callers allowed to manage roles, a role change."""
        user = await self._get_user_or_404(user_id)

        if "role" in changes and changes["role"] != user.role:
            new_role = changes["role"]
            if not has_permission(caller_role, Permission.MANAGE_ROLES):
                raise ForbiddenError("Only founders can change user roles.")
            if new_role not in {role.value for role in Role}:
                raise ValidationError(f"Invalid role '{new_role}'.")
            if user.role == Role.FOUNDER.value:
                raise ForbiddenError("A founder cannot be demoted.")
            user.role = new_role

        for key in ("name", "country"):
            if key in changes:
                setattr(user, key, changes[key])

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

        logger.info(
            "User updated by admin",
            extra={"user_id": user_id, "updated_by": caller_id, "fields": sorted(changes)},
        )
        return user
