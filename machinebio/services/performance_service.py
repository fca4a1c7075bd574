import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.core.metrics import track_performance
from machinebio.models.base import utcnow
from machinebio.models.car import Car
from machinebio.models.catalog import Make, CarModel, Generation
from machinebio.models.performance import PerformanceTime
from machinebio.models.user import User
from machinebio.services.exceptions import (
    ValidationError,
    NotFoundError,
    ForbiddenError,
    DatabaseQueryError,
)

logger = logging.getLogger(__name__)

PERFORMANCE_CATEGORIES = ("0-100", "100-200", "200-300", "402m", "1000m", "track")
PERFORMANCE_STATUSES = ("pending", "approved", "rejected")
MAX_TIMES_PAGE = 100


def serialize_time(time: PerformanceTime, car: Optional[Car] = None, username: Optional[str] = None) -> Dict:
    data = {
        "id": time.id,
        "car_id": time.car_id,
        "user_id": time.user_id,
        "username": username,
        "category": time.category,
        "time_ms": time.time_ms,
        "proof_url": time.proof_url,
        "proof_type": time.proof_type,
        "run_date": time.run_date,
        "location": time.location,
        "weather": time.weather,
        "altitude": time.altitude,
        "car_hp": time.car_hp,
        "status": time.status,
        "review_note": time.review_note,
        "reviewed_at": time.reviewed_at,
        "created_at": time.created_at,
    }
    if car is not None:
        data["car"] = {
            "id": car.id,
            "make": car.make,
            "model": car.model,
            "year": car.year,
            "nickname": car.nickname,
        }
    return data


class PerformanceService:
    """
    Timed runs submitted by car owners, and their moderation.

    A time starts 'pending'. Moderators approve or reject it; only approved
    times are listed publicly by default.
    """

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

    @staticmethod
    def _validate_status(status: str) -> None:
        if status not in PERFORMANCE_STATUSES:
            raise ValidationError(f"Invalid status '{status}'. Expected one of: {', '.join(PERFORMANCE_STATUSES)}.")

    @track_performance(service_name="PerformanceService")
    async def submit_time(
        self,
        car_id: int,
        user_id: int,
        category: str,
        time_ms: int,
        proof_url: Optional[str] = None,
        proof_type: Optional[str] = None,
        run_date: Optional[datetime] = None,
        location: Optional[str] = None,
        weather: Optional[str] = None,
        altitude: Optional[int] = None,
    ) -> PerformanceTime:
        if category not in PERFORMANCE_CATEGORIES:
            raise ValidationError(
                f"Invalid category '{category}'. Expected one of: {', '.join(PERFORMANCE_CATEGORIES)}."
            )
        if time_ms is None or time_ms <= 0:
            raise ValidationError("Time must be a positive number of milliseconds.")

        car = await self.db.get(Car, car_id)
        if car is None:
            raise NotFoundError(f"Car {car_id} not found.")
        if car.owner_id != user_id:
            raise ForbiddenError("Only the owner can submit times for this car.")

        time = PerformanceTime(
            car_id=car_id,
            user_id=user_id,
            category=category,
            time_ms=time_ms,
            proof_url=proof_url,
            proof_type=proof_type,
            run_date=run_date or self.clock(),
            location=location,
            weather=weather,
            altitude=altitude,
            car_hp=car.horsepower,
            status="pending",
        )
        self.db.add(time)
        await self._commit()

        logger.info(
            "Performance time submitted",
            extra={"time_id": time.id, "car_id": car_id, "category": category, "time_ms": time_ms},
        )
        return time

    @track_performance(service_name="PerformanceService")
    async def list_times(
        self,
        category: Optional[str] = None,
        make_slug: Optional[str] = None,
        model_slug: Optional[str] = None,
        status: str = "approved",
        limit: int = 50,
    ) -> List[Dict]:
        """Fastest first. Make and model filters go through the car's catalog generation."""
        self._validate_status(status)
        limit = max(1, min(limit, MAX_TIMES_PAGE))

        stmt = (
            select(PerformanceTime, Car, User.username)
            .join(Car, Car.id == PerformanceTime.car_id)
            .join(User, User.id == PerformanceTime.user_id)
            .where(PerformanceTime.status == status)
            .order_by(PerformanceTime.time_ms, PerformanceTime.id)
            .limit(limit)
        )
        if category:
            stmt = stmt.where(PerformanceTime.category == category)
        if make_slug or model_slug:
            stmt = (
                stmt.join(Generation, Generation.id == Car.generation_id)
                .join(CarModel, CarModel.id == Generation.model_id)
                .join(Make, Make.id == CarModel.make_id)
            )
            if make_slug:
                stmt = stmt.where(Make.slug == make_slug)
            if model_slug:
                stmt = stmt.where(CarModel.slug == model_slug)

        rows = (await self.db.execute(stmt)).all()
        return [serialize_time(time, car, username) for time, car, username in rows]

    async def list_car_times(self, car_id: int) -> List[Dict]:
        """Every time of one car, whatever its review status, by category then fastest."""
        if await self.db.get(Car, car_id) is None:
            raise NotFoundError(f"Car {car_id} not found.")

        rows = (
            await self.db.execute(
                select(PerformanceTime, User.username)
                .join(User, User.id == PerformanceTime.user_id)
                .where(PerformanceTime.car_id == car_id)
                .order_by(PerformanceTime.category, PerformanceTime.time_ms, PerformanceTime.id)
            )
        ).all()
        return [serialize_time(time, username=username) for time, username in rows]

    @track_performance(service_name="PerformanceService")
    async def verify_time(
        self,
        time_id: int,
        status: str,
        reviewer_id: int,
        review_note: Optional[str] = None,
    ) -> PerformanceTime:
        self._validate_status(status)

        time = await self.db.get(PerformanceTime, time_id)
        if time is None:
            raise NotFoundError(f"Performance time {time_id} not found.")

        time.status = status
        time.review_note = review_note
        # Moving a time back to pending clears the review
        time.reviewed_at = self.clock() if status != "pending" else None
        await self._commit()

        logger.info(
            "Performance time reviewed",
            extra={"time_id": time_id, "status": status, "reviewer_id": reviewer_id},
        )
        return time
