from __future__ import annotations

from datetime import date, datetime
from typing import List

from sqlalchemy import Integer, String, Float, Date, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from machinebio.core.db import Base
from machinebio.models.base import utcnow


class Car(Base):
    """A vehicle in a user's garage."""
    __tablename__ = "cars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    owner_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        index=True
    )

    # Canonical identity; cars without it are left out of make/model rankings
    generation_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("generations.id"),
        nullable=True,
        index=True
    )

    make: Mapped[str | None] = mapped_column(String, nullable=True)
    model: Mapped[str | None] = mapped_column(String, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    nickname: Mapped[str | None] = mapped_column(String, nullable=True)

    horsepower: Mapped[int | None] = mapped_column(Integer, nullable=True)
    torque: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )

    history: Mapped[List[HistoryEntry]] = relationship(
        back_populates="car",
        cascade="all, delete-orphan"
    )


class HistoryEntry(Base):
    """A modification, service or purchase logged against a car."""
    __tablename__ = "history_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    car_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cars.id", ondelete="CASCADE"),
        index=True
    )

    title: Mapped[str] = mapped_column(String)

    # Summed per car for the investment ranking
    cost: Mapped[float | None] = mapped_column(Float, nullable=True)

    occurred_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )

    car: Mapped[Car] = relationship(back_populates="history")
