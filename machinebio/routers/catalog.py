from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.core.db import get_db
from machinebio.schemas.car import MakeOut, CarModelOut, GenerationOut
from machinebio.services.car_service import CarService

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/makes", response_model=list[MakeOut])
async def list_makes(db: AsyncSession = Depends(get_db)):
    return await CarService(db).list_makes()


@router.get("/makes/{make_id}/models", response_model=list[CarModelOut])
async def list_models(make_id: int, db: AsyncSession = Depends(get_db)):
    return await CarService(db).list_models(make_id)


@router.get("/models/{model_id}/generations", response_model=list[GenerationOut])
async def list_generations(model_id: int, db: AsyncSession = Depends(get_db)):
    return await CarService(db).list_generations(model_id)
