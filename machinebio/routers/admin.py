from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.rbac import Permission, require_permission
from machinebio.core.db import get_db
from machinebio.models.user import User
from machinebio.routers.nhtsa import get_nhtsa_client
from machinebio.schemas.performance import PerformanceReview
from machinebio.schemas.user import UserAdminUpdate
from machinebio.services.nhtsa import NhtsaClient
from machinebio.services.performance_service import PerformanceService, serialize_time
from machinebio.services.user_service import UserAdminService, serialize_user

router = APIRouter(prefix="/admin", tags=["admin"])

manage_cache = [Depends(require_permission(Permission.MANAGE_CACHE))]


@router.post("/cache/nhtsa/invalidate", dependencies=manage_cache)
async def invalidate_nhtsa_cache(client: NhtsaClient = Depends(get_nhtsa_client)):
    """Drop the cached NHTSA make list so the next request refetches it."""
    client.cache.invalidate()
    return {"message": "NHTSA make cache invalidated successfully"}


@router.get("/cache/nhtsa/status", dependencies=manage_cache)
async def get_nhtsa_cache_status(client: NhtsaClient = Depends(get_nhtsa_client)):
    cached_makes = client.cache.get()
    return {
        "cached": cached_makes is not None,
        "makes_count": len(cached_makes) if cached_makes else 0,
        "age_seconds": client.cache.age_seconds() if cached_makes is not None else None,
        "ttl_seconds": client.cache.ttl_seconds
    }


@router.get("/users", dependencies=[Depends(require_permission(Permission.VIEW_USERS))])
async def list_users(
    search: Optional[str] = None,
    role: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await UserAdminService(db).list_users(search=search, role=role, page=page, limit=limit)


@router.get("/users/{user_id}", dependencies=[Depends(require_permission(Permission.VIEW_USERS))])
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return {"user": await UserAdminService(db).get_user(user_id)}


@router.patch("/users/{user_id}")
async def update_user(
    user_id: int,
    req: UserAdminUpdate,
    admin: User = Depends(require_permission(Permission.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    """Profile fixes. Changing `role` additionally needs the manage:roles permission."""
    user = await UserAdminService(db).update_user(
        user_id,
        admin.id,
        admin.role,
        **req.model_dump(exclude_unset=True),
    )
    return {"user": serialize_user(user)}


@router.post("/performance/{time_id}/verify")
async def verify_performance_time(
    time_id: int,
    req: PerformanceReview,
    reviewer: User = Depends(require_permission(Permission.VERIFY_PERFORMANCE)),
    db: AsyncSession = Depends(get_db),
):
    time = await PerformanceService(db).verify_time(
        time_id,
        req.status,
        reviewer_id=reviewer.id,
        review_note=req.review_note,
    )
    return {"time": serialize_time(time)}
