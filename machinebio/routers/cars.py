from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.dependencies import get_current_user
from machinebio.core.db import get_db
from machinebio.models.user import User
from machinebio.schemas.car import CarCreate, CarUpdate, CarOut, HistoryEntryCreate, HistoryEntryOut
from machinebio.services.car_service import CarService
from machinebio.services.performance_service import PerformanceService
from machinebio.services.ranking import RankingService

router = APIRouter(prefix="/cars", tags=["cars"])


@router.post("", status_code=201, response_model=CarOut)
async def create_car(
    req: CarCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CarService(db).create_car(current_user.id, **req.model_dump())


@router.get("/{car_id}", response_model=CarOut)
async def get_car(car_id: int, db: AsyncSession = Depends(get_db)):
    return await CarService(db).get_car(car_id)


@router.patch("/{car_id}", response_model=CarOut)
async def update_car(
    car_id: int,
    req: CarUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CarService(db).update_car(
        car_id,
        current_user.id,
        caller_role=current_user.role,
        **req.model_dump(exclude_unset=True),
    )


@router.delete("/{car_id}", status_code=204)
async def delete_car(
    car_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await CarService(db).delete_car(car_id, current_user.id, caller_role=current_user.role)
    return Response(status_code=204)


@router.get("/{car_id}/history", response_model=list[HistoryEntryOut])
async def list_history(car_id: int, db: AsyncSession = Depends(get_db)):
    return await CarService(db).list_history(car_id)


@router.post("/{car_id}/history", status_code=201, response_model=HistoryEntryOut)
async def add_history_entry(
    car_id: int,
    req: HistoryEntryCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CarService(db).add_history_entry(
        car_id,
        current_user.id,
        req.title,
        cost=req.cost,
        occurred_on=req.occurred_on,
        caller_role=current_user.role,
    )


@router.delete("/{car_id}/history/{entry_id}", status_code=204)
async def delete_history_entry(
    car_id: int,
    entry_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await CarService(db).delete_history_entry(car_id, entry_id, current_user.id, caller_role=current_user.role)
    return Response(status_code=204)


@router.get("/{car_id}/percentile")
async def get_car_percentile(car_id: int, db: AsyncSession = Depends(get_db)):
    """Horsepower, torque and investment rankings, globally and within make, model and owner country."""
    return await RankingService(db).get_car_rankings(car_id)


@router.get("/{car_id}/performance")
async def list_car_times(car_id: int, db: AsyncSession = Depends(get_db)):
    return {"times": await PerformanceService(db).list_car_times(car_id)}
