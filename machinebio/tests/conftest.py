"""
Pytest configuration and shared fixtures for the MachineBio test suite.

This module provides:
- Database fixtures (in-memory SQLite for fast tests)
- An HTTP client over the FastAPI app with the database overridden
- Factories for users, catalog entries, cars and spots
"""

import os

os.environ.setdefault("JWT_SECRET", "testsecret")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("JWT_EXP_DELTA_SECONDS", "3600")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from machinebio.auth.auth_handler import sign_jwt
from machinebio.core.db import get_db, Base
from machinebio.main import app
from machinebio.models import User, Make, CarModel, Generation, Car, HistoryEntry, Spot


# Test Database Configuration
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def async_engine():
    """Create async engine for testing with in-memory SQLite."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def async_db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for testing."""
    async_session = async_sessionmaker(async_engine, expire_on_commit=False)

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def async_client(async_db_session) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the app with the database dependency overridden."""

    async def override_get_db():
        yield async_db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# Test Data Factories
@pytest.fixture
def make_user(async_db_session):
    """Factory creating users. Passwords are not hashed; login tests register through the API."""
    counter = {"n": 0}

    async def _make_user(username=None, country="RS", role="user") -> User:
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = User(
            email=f"{username}@example.com",
            username=username,
            password="not-a-real-hash",
            country=country,
            role=role,
        )
        async_db_session.add(user)
        await async_db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_generation(async_db_session):
    """Factory creating a make -> model -> generation chain, reusing makes and models by name."""
    makes = {}
    models = {}

    async def _make_generation(make_name="Toyota", model_name="Supra", code="A80") -> Generation:
        if make_name not in makes:
            make = Make(name=make_name, slug=make_name.lower())
            async_db_session.add(make)
            await async_db_session.flush()
            makes[make_name] = make
        key = (make_name, model_name)
        if key not in models:
            model = CarModel(make_id=makes[make_name].id, name=model_name, slug=model_name.lower())
            async_db_session.add(model)
            await async_db_session.flush()
            models[key] = model
        generation = Generation(model_id=models[key].id, name=code)
        async_db_session.add(generation)
        await async_db_session.commit()
        return generation

    return _make_generation


@pytest.fixture
def make_car(async_db_session):
    async def _make_car(owner, horsepower=None, torque=None, generation=None, costs=()) -> Car:
        car = Car(
            owner_id=owner.id,
            horsepower=horsepower,
            torque=torque,
            generation_id=generation.id if generation else None,
        )
        async_db_session.add(car)
        await async_db_session.flush()
        for cost in costs:
            async_db_session.add(HistoryEntry(car_id=car.id, title="Upgrade", cost=cost))
        await async_db_session.commit()
        return car

    return _make_car


@pytest.fixture
def make_spot(async_db_session):
    async def _make_spot(spotter, is_challenge=True, correct_answer="Toyota Supra", **fields) -> Spot:
        spot = Spot(
            spotter_id=spotter.id,
            image_url="https://img.example.com/spot.jpg",
            is_challenge=is_challenge,
            correct_answer=correct_answer if is_challenge else None,
            is_identified=not is_challenge and bool(fields.get("make")),
            **fields,
        )
        async_db_session.add(spot)
        await async_db_session.commit()
        return spot

    return _make_spot


@pytest.fixture
def auth_headers():
    """Builds an Authorization header carrying a freshly signed token for a user."""
    def _auth_headers(user: User) -> dict:
        token = sign_jwt(user.id)["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
