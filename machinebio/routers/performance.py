from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.dependencies import get_current_user
from machinebio.core.db import get_db
from machinebio.models.user import User
from machinebio.schemas.performance import PerformanceTimeCreate
from machinebio.services.performance_service import PerformanceService, serialize_time

router = APIRouter(prefix="/performance", tags=["performance"])


@router.get("")
async def list_times(
    category: Optional[str] = None,
    make: Optional[str] = Query(None, description="Make slug"),
    model: Optional[str] = Query(None, description="Model slug"),
    status: str = "approved",
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Performance leaderboard, fastest first."""
    times = await PerformanceService(db).list_times(
        category=category,
        make_slug=make,
        model_slug=model,
        status=status,
        limit=limit,
    )
    return {"times": times}


@router.post("", status_code=201)
async def submit_time(
    req: PerformanceTimeCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    time = await PerformanceService(db).submit_time(user_id=current_user.id, **req.model_dump())
    return {"time": serialize_time(time, username=current_user.username)}
