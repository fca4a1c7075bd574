from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from machinebio.core.db import Base
from machinebio.models.base import utcnow


class PerformanceTime(Base):
    """
    A timed run (0-100, quarter mile, lap...) submitted by a car's owner.

    Only approved times appear on the public leaderboard; moderators move a
    time out of 'pending'.
    """
    __tablename__ = "performance_times"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    car_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cars.id", ondelete="CASCADE"),
        index=True
    )

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        index=True
    )

    category: Mapped[str] = mapped_column(String, index=True)
    time_ms: Mapped[int] = mapped_column(Integer)

    proof_url: Mapped[str | None] = mapped_column(String, nullable=True)
    proof_type: Mapped[str | None] = mapped_column(String, nullable=True)  # 'video' | 'dragy' | 'timeslip'
    run_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    location: Mapped[str | None] = mapped_column(String, nullable=True)
    weather: Mapped[str | None] = mapped_column(String, nullable=True)
    altitude: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Horsepower of the car when the time was submitted
    car_hp: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String, default="pending", index=True)
    review_note: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )
