from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from machinebio.services.nhtsa import NhtsaClient

router = APIRouter(prefix="/nhtsa", tags=["nhtsa"])


def get_nhtsa_client(request: Request) -> NhtsaClient:
    return request.app.state.nhtsa_client


@router.get("/makes")
async def list_makes(client: NhtsaClient = Depends(get_nhtsa_client)):
    return {"makes": await client.get_makes()}


@router.get("/models")
async def list_models(
    make: str = Query(..., min_length=1),
    year: Optional[int] = Query(None, ge=1900, le=2100),
    client: NhtsaClient = Depends(get_nhtsa_client),
):
    return {"make": make, "year": year, "models": await client.get_models(make, year)}
