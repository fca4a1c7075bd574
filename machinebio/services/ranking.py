"""
Percentile rankings for a car's horsepower, torque and total investment.

Rankings are computed on demand from a snapshot of every car's stats. A car
with no value for a metric is not ranked for it, and cars without a value
never count towards another car's population.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.core.metrics import track_performance
from machinebio.models.car import Car, HistoryEntry
from machinebio.models.catalog import CarModel, Generation, Make
from machinebio.models.user import User
from machinebio.services.exceptions import NotFoundError, DatabaseQueryError, ValidationError

logger = logging.getLogger(__name__)

# Below this many ranked cars the percentile is derived from the ordinal rank
SMALL_SAMPLE_SIZE = 10

METRICS = ("horsepower", "torque", "investment")
SCOPES = ("global", "make", "model", "country")


@dataclass(frozen=True)
class Ranking:
    rank: int
    total: int
    percentile: int

    def as_dict(self) -> Dict[str, int]:
        return {"rank": self.rank, "total": self.total, "percentile": self.percentile}


@dataclass(frozen=True)
class VehicleStats:
    """Snapshot of the values a car is ranked on."""
    car_id: int
    horsepower: Optional[float] = None
    torque: Optional[float] = None
    investment: float = 0
    make_id: Optional[int] = None
    model_id: Optional[int] = None
    country: Optional[str] = None

    def metric(self, name: str) -> Optional[float]:
        return getattr(self, name)


@dataclass
class MetricRankings:
    scopes: Dict[str, Optional[Ranking]] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Optional[Dict[str, int]]]:
        return {
            scope: ranking.as_dict() if ranking else None
            for scope, ranking in self.scopes.items()
        }


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def calculate_ranking(value: Optional[float], population: Iterable[Optional[float]]) -> Optional[Ranking]:
    """
    Rank `value` within `population`, highest first.

    The population should include the ranked car's own value. Non-positive and
    missing entries are dropped. Returns None when there is nothing to rank.
    Ties resolve in favour of the ranked value: matching the 3rd best value
    ranks 3rd.
    """
    if value is None or value <= 0:
        return None

    ranked = sorted((v for v in population if v is not None and v > 0), reverse=True)
    total = len(ranked)
    if total == 0:
        return None

    above = sum(1 for v in ranked if v > value)
    # A value below every member still ranks last, not past the end
    rank = min(above + 1, total)

    if total < SMALL_SAMPLE_SIZE:
        percentile = max(1, _round_half_up(rank / total * 100))
    else:
        below = sum(1 for v in ranked if v < value)
        percentile = max(1, _round_half_up(100 - (below / total) * 100))

    return Ranking(rank=rank, total=total, percentile=percentile)


def _in_scope(target: VehicleStats, other: VehicleStats, scope: str) -> bool:
    if scope == "global":
        return True
    if scope == "make":
        return other.make_id == target.make_id
    if scope == "model":
        return other.model_id == target.model_id
    if scope == "country":
        return other.country == target.country
    raise ValueError(f"Unknown ranking scope: {scope}")


def _scope_key(target: VehicleStats, scope: str):
    return {
        "global": True,
        "make": target.make_id,
        "model": target.model_id,
        "country": target.country,
    }[scope]


def build_car_rankings(target: VehicleStats, population: Sequence[VehicleStats]) -> Dict[str, MetricRankings]:
    """
    Rankings for every metric and scope.

    A target without a canonical make/model (or without an owner country) gets
    no ranking for that scope, instead of being lumped into an unknown bucket.
    """
    results: Dict[str, MetricRankings] = {}
    for metric in METRICS:
        rankings = MetricRankings()
        for scope in SCOPES:
            if _scope_key(target, scope) is None:
                rankings.scopes[scope] = None
                continue
            values = [other.metric(metric) for other in population if _in_scope(target, other, scope)]
            rankings.scopes[scope] = calculate_ranking(target.metric(metric), values)
        results[metric] = rankings
    return results


class RankingService:
    """Loads car stats from the database and feeds them to the ranking functions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _investments(self) -> Dict[int, float]:
        stmt = (
            select(HistoryEntry.car_id, func.sum(HistoryEntry.cost).label("total"))
            .group_by(HistoryEntry.car_id)
        )
        rows = (await self.db.execute(stmt)).all()
        return {row.car_id: row.total or 0 for row in rows}

    async def load_vehicle_stats(self) -> List[VehicleStats]:
        """One snapshot per car, with summed history cost as investment."""
        try:
            stmt = (
                select(
                    Car.id,
                    Car.horsepower,
                    Car.torque,
                    CarModel.make_id,
                    Generation.model_id,
                    User.country,
                )
                .join(User, User.id == Car.owner_id)
                .outerjoin(Generation, Generation.id == Car.generation_id)
                .outerjoin(CarModel, CarModel.id == Generation.model_id)
            )
            rows = (await self.db.execute(stmt)).all()
            investments = await self._investments()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        return [
            VehicleStats(
                car_id=row.id,
                horsepower=row.horsepower,
                torque=row.torque,
                investment=investments.get(row.id, 0),
                make_id=row.make_id,
                model_id=row.model_id,
                country=row.country,
            )
            for row in rows
        ]

    @track_performance(service_name="RankingService")
    async def get_car_rankings(self, car_id: int) -> Dict:
        population = await self.load_vehicle_stats()
        target = next((stats for stats in population if stats.car_id == car_id), None)
        if target is None:
            raise NotFoundError(f"Car {car_id} not found.")

        rankings = build_car_rankings(target, population)
        return {
            "car_id": car_id,
            **{metric: rankings[metric].as_dict() for metric in METRICS},
            "total_investment": target.investment,
        }

    @track_performance(service_name="RankingService")
    async def investment_leaderboard(self, limit: int = 50) -> List[Dict]:
        """Cars ranked by summed history cost. Cars with no recorded spend are left out."""
        total = func.sum(HistoryEntry.cost)
        try:
            stmt = (
                select(Car, total.label("total_investment"))
                .join(HistoryEntry, HistoryEntry.car_id == Car.id)
                .group_by(Car.id)
                .having(total > 0)
                .order_by(total.desc(), Car.id)
                .limit(limit)
            )
            rows = (await self.db.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        return [
            {
                "rank": position,
                "car_id": car.id,
                "owner_id": car.owner_id,
                "make": car.make,
                "model": car.model,
                "year": car.year,
                "nickname": car.nickname,
                "total_investment": total_investment,
            }
            for position, (car, total_investment) in enumerate(rows, start=1)
        ]

    @track_performance(service_name="RankingService")
    async def performance_leaderboard(
        self,
        metric: str = "horsepower",
        limit: int = 50,
        make_id: Optional[int] = None,
    ) -> List[Dict]:
        if metric not in ("horsepower", "torque"):
            raise ValidationError(f"Unsupported leaderboard metric: {metric}")

        column = getattr(Car, metric)
        stmt = (
            select(Car, Make.name.label("canonical_make"))
            .outerjoin(Generation, Generation.id == Car.generation_id)
            .outerjoin(CarModel, CarModel.id == Generation.model_id)
            .outerjoin(Make, Make.id == CarModel.make_id)
            .where(column > 0)
            .order_by(column.desc(), Car.id)
            .limit(limit)
        )
        if make_id is not None:
            stmt = stmt.where(Make.id == make_id)

        try:
            rows = (await self.db.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        return [
            {
                "rank": position,
                "car_id": car.id,
                "owner_id": car.owner_id,
                "make": canonical_make or car.make,
                "model": car.model,
                "year": car.year,
                metric: getattr(car, metric),
            }
            for position, (car, canonical_make) in enumerate(rows, start=1)
        ]
