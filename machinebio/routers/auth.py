from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.auth_handler import sign_jwt
from machinebio.auth.dependencies import get_current_user
from machinebio.auth.passwords_handler import hash_password_async, verify_password_async
from machinebio.core.db import get_db
from machinebio.middleware.rate_limit import limiter
from machinebio.models.user import User
from machinebio.schemas.user import UserSchema, UserLoginSchema, UserOut

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register")
@limiter.limit("10/minute")
async def register_user(request: Request, user: UserSchema, db: AsyncSession = Depends(get_db)):
    email = user.email.lower()

    existing_user = (
        await db.execute(select(User).where(or_(User.email == email, User.username == user.username)))
    ).scalar_one_or_none()

    if existing_user:
        raise HTTPException(status_code=400, detail="User already exists.")

    hashed_password = await hash_password_async(user.password)

    new_user = User(
        email=email,
        username=user.username,
        password=hashed_password,
        name=user.name,
        country=user.country,
        role="user",
    )

    db.add(new_user)

    try:
        await db.commit()
    except IntegrityError:
        # handle race where another request created the same email or username
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email or username already registered.")

    return sign_jwt(new_user.id)


@router.post("/login")
@limiter.limit("20/minute")
async def login_user(request: Request, user: UserLoginSchema, db: AsyncSession = Depends(get_db)):
    existing_user = (
        await db.execute(select(User).where(User.email == user.email.lower()))
    ).scalar_one_or_none()
    if not existing_user:
        raise HTTPException(status_code=404, detail="User not found.")

    password_valid = await verify_password_async(user.password, existing_user.password)
    if not password_valid:
        raise HTTPException(status_code=401, detail="Invalid password.")

    return sign_jwt(existing_user.id)


@router.get("/me", response_model=UserOut)
async def me(current_user: User = Depends(get_current_user)):
    return current_user
