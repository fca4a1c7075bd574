from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.core.db import get_db
from machinebio.services.ranking import RankingService

router = APIRouter(prefix="/leaderboards", tags=["leaderboards"])


@router.get("/investment")
async def investment_leaderboard(
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return {"leaderboard": await RankingService(db).investment_leaderboard(limit=limit)}


@router.get("/performance")
async def performance_leaderboard(
    metric: str = Query("horsepower", pattern="^(horsepower|torque)$"),
    make_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    leaderboard = await RankingService(db).performance_leaderboard(metric=metric, limit=limit, make_id=make_id)
    return {"metric": metric, "leaderboard": leaderboard}
