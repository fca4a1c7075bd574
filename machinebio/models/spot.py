from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, String, Text, Float, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from machinebio.core.db import Base
from machinebio.models.base import utcnow


class Spot(Base):
    """
    A posted photo of a car seen in the wild.

    A challenge spot hides the car's identity in `correct_answer` until the
    spotter reveals it; `revealed_at` is set exactly once.
    """
    __tablename__ = "spots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    spotter_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        index=True
    )

    image_url: Mapped[str] = mapped_column(String)
    thumbnail: Mapped[str | None] = mapped_column(String, nullable=True)
    caption: Mapped[str | None] = mapped_column(String, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_name: Mapped[str | None] = mapped_column(String, nullable=True)

    make: Mapped[str | None] = mapped_column(String, nullable=True)
    model: Mapped[str | None] = mapped_column(String, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_challenge: Mapped[bool] = mapped_column(Boolean, default=False)
    is_identified: Mapped[bool] = mapped_column(Boolean, default=False)
    revealed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    correct_answer: Mapped[str | None] = mapped_column(String, nullable=True)

    # Rounded average of the rarity ratings
    rarity_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        index=True
    )


class Guess(Base):
    __tablename__ = "guesses"
    __table_args__ = (UniqueConstraint("spot_id", "user_id", name="uq_guess_spot_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    spot_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("spots.id", ondelete="CASCADE"),
        index=True
    )

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        index=True
    )

    make: Mapped[str] = mapped_column(String)
    model: Mapped[str] = mapped_column(String)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Null until the spot is revealed
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )


class SpotRating(Base):
    __tablename__ = "spot_ratings"
    __table_args__ = (UniqueConstraint("spot_id", "user_id", name="uq_rating_spot_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    spot_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("spots.id", ondelete="CASCADE"),
        index=True
    )

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        index=True
    )

    rating: Mapped[int] = mapped_column(Integer)  # 1..10


class SpotComment(Base):
    """A comment on a spot. Replies point at a top-level comment through parent_id."""
    __tablename__ = "spot_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    spot_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("spots.id", ondelete="CASCADE"),
        index=True
    )

    author_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        index=True
    )

    parent_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("spot_comments.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    content: Mapped[str] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )
