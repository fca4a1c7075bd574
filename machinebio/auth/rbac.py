from enum import Enum
from typing import Set

from fastapi import Depends, HTTPException

from machinebio.auth.dependencies import get_current_user


class Permission(str, Enum):
    """All application permissions (fine-grained access control)"""

    # Content moderation
    DELETE_ANY_SPOT = "delete:any_spot"
    MODERATE_COMMENTS = "moderate:comments"
    VERIFY_PERFORMANCE = "verify:performance"

    # Garage administration
    MANAGE_ANY_CAR = "manage:any_car"

    # Admin permissions
    VIEW_USERS = "view:users"
    MANAGE_USERS = "manage:users"
    MANAGE_ROLES = "manage:roles"
    MANAGE_CACHE = "manage:cache"


class Role(str, Enum):
    """Application roles (coarse-grained)"""
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"
    FOUNDER = "founder"


# Permission matrix - what each role can do beyond owning its own content
ROLE_PERMISSIONS: dict[Role, Set[Permission]] = {
    Role.USER: set(),
    Role.MODERATOR: {
        Permission.DELETE_ANY_SPOT,
        Permission.MODERATE_COMMENTS,
        Permission.VERIFY_PERFORMANCE,
    },
    Role.ADMIN: {
        Permission.DELETE_ANY_SPOT,
        Permission.MODERATE_COMMENTS,
        Permission.VERIFY_PERFORMANCE,
        Permission.MANAGE_ANY_CAR,
        Permission.VIEW_USERS,
        Permission.MANAGE_USERS,
        Permission.MANAGE_CACHE,
    },
    Role.FOUNDER: set(Permission),  # All permissions
}


def has_permission(role: str | Role | None, *permissions: Permission) -> bool:
    """True if `role` grants every one of `permissions`. Unknown roles grant nothing."""
    try:
        granted = ROLE_PERMISSIONS[Role(role)]
    except ValueError:
        return False
    return all(permission in granted for permission in permissions)


def require_permission(*permissions: Permission):
    """FastAPI dependency factory that rejects users lacking `permissions` with 403."""
    async def checker(user=Depends(get_current_user)):
        if not has_permission(user.role, *permissions):
            raise HTTPException(status_code=403, detail="Insufficient permissions.")
        return user

    return checker
