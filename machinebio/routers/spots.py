from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.dependencies import get_current_user, get_optional_user
from machinebio.core.db import get_db
from machinebio.middleware.rate_limit import limiter
from machinebio.models.user import User
from machinebio.schemas.spot import SpotCreate, SpotUpdate, GuessCreate, RatingCreate, CommentCreate
from machinebio.services.comment_service import CommentService, serialize_comment
from machinebio.services.spot_service import SpotService, serialize_spot, serialize_guess

router = APIRouter(prefix="/spots", tags=["spots"])


@router.get("")
async def list_spots(
    filter: str = Query("all", description="all | challenges | mine"),
    q: Optional[str] = None,
    cursor: Optional[int] = None,
    limit: int = Query(20, ge=1, le=50),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SpotService(db)
    return await svc.list_spots(
        viewer_id=viewer.id if viewer else None,
        filter=filter,
        query=q,
        cursor=cursor,
        limit=limit,
    )


@router.post("", status_code=201)
async def create_spot(
    req: SpotCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SpotService(db)
    spot = await svc.create_spot(spotter_id=current_user.id, **req.model_dump())
    return {"spot": serialize_spot(spot, is_owner=True)}


@router.get("/{spot_id}")
async def get_spot(
    spot_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SpotService(db)
    return {"spot": await svc.get_spot(spot_id, viewer_id=viewer.id if viewer else None)}


@router.patch("/{spot_id}")
async def update_spot(
    spot_id: int,
    req: SpotUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SpotService(db)
    # Only fields present in the request body are applied
    spot = await svc.update_spot(spot_id, current_user.id, **req.model_dump(exclude_unset=True))
    return {"spot": serialize_spot(spot, is_owner=True)}


@router.delete("/{spot_id}", status_code=204)
async def delete_spot(
    spot_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SpotService(db)
    await svc.delete_spot(spot_id, current_user.id, caller_role=current_user.role)
    return Response(status_code=204)


@router.post("/{spot_id}/reveal")
async def reveal_spot(
    spot_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SpotService(db)
    await svc.reveal_spot(spot_id, current_user.id)
    return {"spot": await svc.get_spot(spot_id, viewer_id=current_user.id)}


@router.post("/{spot_id}/guess", status_code=201)
@limiter.limit("30/minute")
async def submit_guess(
    request: Request,
    spot_id: int,
    req: GuessCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SpotService(db)
    guess = await svc.submit_guess(spot_id, current_user.id, req.make, req.model, req.year)
    return {"guess": serialize_guess(guess, show_result=False, username=current_user.username)}


@router.post("/{spot_id}/rate")
async def rate_spot(
    spot_id: int,
    req: RatingCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SpotService(db)
    return await svc.rate_spot(spot_id, current_user.id, req.rating)


@router.get("/{spot_id}/comments")
async def list_comments(spot_id: int, db: AsyncSession = Depends(get_db)):
    return {"comments": await CommentService(db).list_comments(spot_id)}


@router.post("/{spot_id}/comments", status_code=201)
async def add_comment(
    spot_id: int,
    req: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await CommentService(db).add_comment(spot_id, current_user.id, req.content, parent_id=req.parent_id)
    return {"comment": serialize_comment(comment, current_user.username)}


@router.delete("/{spot_id}/comments/{comment_id}", status_code=204)
async def delete_comment(
    spot_id: int,
    comment_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await CommentService(db).delete_comment(spot_id, comment_id, current_user.id, caller_role=current_user.role)
    return Response(status_code=204)
