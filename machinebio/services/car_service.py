import logging
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.rbac import Permission, has_permission
from machinebio.core.metrics import track_performance
from machinebio.models.car import Car, HistoryEntry
from machinebio.models.catalog import Make, CarModel, Generation
from machinebio.models.performance import PerformanceTime
from machinebio.services.exceptions import (
    ValidationError,
    NotFoundError,
    ForbiddenError,
    DatabaseQueryError,
)

logger = logging.getLogger(__name__)

EDITABLE_CAR_FIELDS = ("generation_id", "make", "model", "year", "nickname", "horsepower", "torque")


class CarService:
    """Garage management: cars, their history entries, and the make/model catalog."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

    async def _get_car_or_404(self, car_id: int) -> Car:
        car = await self.db.get(Car, car_id)
        if car is None:
            raise NotFoundError(f"Car {car_id} not found.")
        return car

    def _check_can_manage(self, car: Car, caller_id: int, caller_role: str) -> None:
        if car.owner_id != caller_id and not has_permission(caller_role, Permission.MANAGE_ANY_CAR):
            raise ForbiddenError("Only the owner or an administrator can change this car.")

    async def _validate_generation(self, generation_id: Optional[int]) -> None:
        if generation_id is not None and await self.db.get(Generation, generation_id) is None:
            raise ValidationError(f"Generation {generation_id} does not exist.")

    @staticmethod
    def _validate_stats(values: Dict) -> None:
        for key in ("horsepower", "torque"):
            if values.get(key) is not None and values[key] < 0:
                raise ValidationError(f"{key} cannot be negative.")

    @track_performance(service_name="CarService")
    async def create_car(self, owner_id: int, **fields) -> Car:
        self._validate_stats(fields)
        await self._validate_generation(fields.get("generation_id"))

        car = Car(owner_id=owner_id, **{k: v for k, v in fields.items() if k in EDITABLE_CAR_FIELDS})
        self.db.add(car)
        await self._commit()
        logger.info("Car created", extra={"car_id": car.id, "owner_id": owner_id})
        return car

    async def get_car(self, car_id: int) -> Car:
        return await self._get_car_or_404(car_id)

    @track_performance(service_name="CarService")
    async def update_car(self, car_id: int, caller_id: int, caller_role: str = "user", **changes) -> Car:
        car = await self._get_car_or_404(car_id)
        self._check_can_manage(car, caller_id, caller_role)
        self._validate_stats(changes)
        if "generation_id" in changes:
            await self._validate_generation(changes["generation_id"])

        for key, value in changes.items():
            if key in EDITABLE_CAR_FIELDS:
                setattr(car, key, value)

        await self._commit()
        return car

    @track_performance(service_name="CarService")
    async def delete_car(self, car_id: int, caller_id: int, caller_role: str = "user") -> None:
        car = await self._get_car_or_404(car_id)
        self._check_can_manage(car, caller_id, caller_role)

        try:
            # History entries go with the car through the relationship cascade
            await self.db.execute(delete(PerformanceTime).where(PerformanceTime.car_id == car_id))
            await self.db.delete(car)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))
        logger.info("Car deleted", extra={"car_id": car_id, "deleted_by": caller_id})

    async def list_history(self, car_id: int) -> List[HistoryEntry]:
        await self._get_car_or_404(car_id)
        result = await self.db.execute(
            select(HistoryEntry)
            .where(HistoryEntry.car_id == car_id)
            .order_by(HistoryEntry.occurred_on, HistoryEntry.id)
        )
        return list(result.scalars().all())

    @track_performance(service_name="CarService")
    async def add_history_entry(
        self,
        car_id: int,
        caller_id: int,
        title: str,
        cost: Optional[float] = None,
        occurred_on: Optional[date] = None,
        caller_role: str = "user",
    ) -> HistoryEntry:
        car = await self._get_car_or_404(car_id)
        self._check_can_manage(car, caller_id, caller_role)

        if not title or not title.strip():
            raise ValidationError("Title is required.")
        if cost is not None and cost < 0:
            raise ValidationError("Cost cannot be negative.")

        entry = HistoryEntry(car_id=car_id, title=title.strip(), cost=cost, occurred_on=occurred_on)
        self.db.add(entry)
        await self._commit()
        return entry

    @track_performance(service_name="CarService")
    async def delete_history_entry(
        self,
        car_id: int,
        entry_id: int,
        caller_id: int,
        caller_role: str = "user",
    ) -> None:
        car = await self._get_car_or_404(car_id)
        self._check_can_manage(car, caller_id, caller_role)

        entry = await self.db.get(HistoryEntry, entry_id)
        if entry is None or entry.car_id != car_id:
            raise NotFoundError(f"History entry {entry_id} not found.")

        await self.db.delete(entry)
        await self._commit()

    # Catalog

    async def list_makes(self) -> List[Make]:
        result = await self.db.execute(select(Make).order_by(Make.name))
        return list(result.scalars().all())

    async def list_models(self, make_id: int) -> List[CarModel]:
        if await self.db.get(Make, make_id) is None:
            raise NotFoundError(f"Make {make_id} not found.")
        result = await self.db.execute(
            select(CarModel).where(CarModel.make_id == make_id).order_by(CarModel.name)
        )
        return list(result.scalars().all())

    async def list_generations(self, model_id: int) -> List[Generation]:
        if await self.db.get(CarModel, model_id) is None:
            raise NotFoundError(f"Model {model_id} not found.")
        result = await self.db.execute(
            select(Generation).where(Generation.model_id == model_id).order_by(Generation.name)
        )
        return list(result.scalars().all())
