import math
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import select, insert, update, delete, func, or_, literal, Integer, String, DateTime
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.rbac import Permission, has_permission
from machinebio.core.metrics import track_performance
from machinebio.core.prometheus_metrics import prometheus_collector
from machinebio.models.base import utcnow
from machinebio.models.spot import Spot, Guess, SpotRating, SpotComment
from machinebio.models.user import User
from machinebio.services.exceptions import (
    ValidationError,
    NotFoundError,
    ForbiddenError,
    InvalidStateError,
    DuplicateError,
    DatabaseQueryError,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50
SPOT_FILTERS = ("all", "challenges", "mine")


def split_answer(answer: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """'Toyota Supra MK4' -> ('Toyota', 'Supra MK4'). Single-word answers give (None, None)."""
    if not answer:
        return None, None
    parts = answer.split(None, 1)
    if len(parts) < 2:
        return None, None
    return parts[0], parts[1].strip()


def _token_matches(tokens: List[str], guessed: str) -> bool:
    return any(guessed in token or token in guessed for token in tokens)


def is_guess_correct(answer: Optional[str], make: str, model: str) -> bool:
    """
    Forgiving match of a guess against the revealed answer.

    Both the guessed make and model must overlap, as substrings in either
    direction, with some word of the answer. "Golf" matches "VW Golf GTI".
    This accepts the occasional false positive in exchange for not punishing
    phrasing differences.
    """
    tokens = (answer or "").lower().split()
    if not tokens:
        return False
    return (
        _token_matches(tokens, make.lower().strip())
        and _token_matches(tokens, model.lower().strip())
    )


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def serialize_spot(spot: Spot, is_owner: bool) -> Dict:
    """Spot fields visible to the viewer. The answer stays hidden until reveal unless the viewer posted it."""
    data = {
        "id": spot.id,
        "spotter_id": spot.spotter_id,
        "image_url": spot.image_url,
        "thumbnail": spot.thumbnail,
        "caption": spot.caption,
        "latitude": spot.latitude,
        "longitude": spot.longitude,
        "location_name": spot.location_name,
        "make": spot.make,
        "model": spot.model,
        "year": spot.year,
        "is_challenge": spot.is_challenge,
        "is_identified": spot.is_identified,
        "revealed_at": spot.revealed_at,
        "rarity_score": spot.rarity_score,
        "created_at": spot.created_at,
        "is_owner": is_owner,
    }
    if spot.revealed_at is not None or is_owner:
        data["correct_answer"] = spot.correct_answer
    return data


def serialize_guess(guess: Guess, show_result: bool, username: Optional[str] = None) -> Dict:
    data = {
        "id": guess.id,
        "spot_id": guess.spot_id,
        "user_id": guess.user_id,
        "username": username,
        "make": guess.make,
        "model": guess.model,
        "year": guess.year,
        "created_at": guess.created_at,
    }
    if show_result:
        data["is_correct"] = guess.is_correct
    return data


class SpotService:
    """
    Car spotting and guess-the-car challenges.

    Lifecycle of a challenge spot: open (revealed_at is null) -> revealed.
    The transition happens once, and scores every guess in the same
    transaction.
    """

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def _get_spot_or_404(self, spot_id: int) -> Spot:
        spot = await self.db.get(Spot, spot_id)
        if spot is None:
            raise NotFoundError(f"Spot {spot_id} not found.")
        return spot

    async def _lock_spot_or_404(self, spot_id: int) -> Spot:
        """Load the spot with fresh column values, holding its row lock until commit."""
        spot = (
            await self.db.execute(
                select(Spot)
                .where(Spot.id == spot_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if spot is None:
            raise NotFoundError(f"Spot {spot_id} not found.")
        return spot

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

    @track_performance(service_name="SpotService")
    async def create_spot(
        self,
        spotter_id: int,
        image_url: str,
        is_challenge: bool = False,
        correct_answer: Optional[str] = None,
        make: Optional[str] = None,
        model: Optional[str] = None,
        year: Optional[int] = None,
        caption: Optional[str] = None,
        thumbnail: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        location_name: Optional[str] = None,
    ) -> Spot:
        if _is_blank(image_url):
            raise ValidationError("Image URL is required.")

        if is_challenge and _is_blank(correct_answer):
            raise ValidationError("Correct answer is required for challenges.")

        if is_challenge:
            # The identity lives only in correct_answer until the reveal
            make, model, year = None, None, None
            correct_answer = correct_answer.strip()
        else:
            correct_answer = None

        spot = Spot(
            spotter_id=spotter_id,
            image_url=image_url,
            thumbnail=thumbnail,
            caption=caption,
            latitude=latitude,
            longitude=longitude,
            location_name=location_name,
            make=make,
            model=model,
            year=year,
            is_challenge=is_challenge,
            is_identified=not is_challenge and not _is_blank(make),
            correct_answer=correct_answer,
        )
        self.db.add(spot)
        await self._commit()

        logger.info(
            "Spot created",
            extra={"spot_id": spot.id, "spotter_id": spotter_id, "is_challenge": is_challenge},
        )
        return spot

    @track_performance(service_name="SpotService")
    async def submit_guess(
        self,
        spot_id: int,
        user_id: int,
        make: str,
        model: str,
        year: Optional[int] = None,
    ) -> Guess:
        """
        Record a guess on an open challenge.

        The insert only happens while the spot is still unrevealed, checked in
        the same statement, so a guess can never land after the reveal that
        would have scored it.
        """
        spot = await self._lock_spot_or_404(spot_id)

        if not spot.is_challenge:
            raise InvalidStateError("This is not a challenge spot.")
        if spot.revealed_at is not None:
            raise InvalidStateError("This challenge has already been revealed.")
        if spot.spotter_id == user_id:
            raise InvalidStateError("You cannot guess on your own spot.")

        existing = (
            await self.db.execute(
                select(Guess.id).where(Guess.spot_id == spot_id, Guess.user_id == user_id)
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateError("You have already guessed on this spot.")

        if _is_blank(make) or _is_blank(model):
            raise ValidationError("Make and model are required.")

        spot_open = (
            select(Spot.id)
            .where(
                Spot.id == spot_id,
                Spot.is_challenge.is_(True),
                Spot.revealed_at.is_(None),
            )
            .exists()
        )
        row = select(
            literal(spot_id, Integer),
            literal(user_id, Integer),
            literal(make.strip(), String),
            literal(model.strip(), String),
            literal(year, Integer),
            literal(self.clock(), DateTime(timezone=True)),
        ).where(spot_open)

        try:
            result = await self.db.execute(
                insert(Guess).from_select(
                    ["spot_id", "user_id", "make", "model", "year", "created_at"],
                    row,
                )
            )
            if result.rowcount != 1:
                await self.db.rollback()
                raise InvalidStateError("This challenge has already been revealed.")

            guess = (
                await self.db.execute(
                    select(Guess).where(Guess.spot_id == spot_id, Guess.user_id == user_id)
                )
            ).scalar_one()
            await self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent guess from the same user
            await self.db.rollback()
            raise DuplicateError("You have already guessed on this spot.")
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

        prometheus_collector.record_guess_submitted()
        logger.info("Guess submitted", extra={"spot_id": spot_id, "user_id": user_id})
        return guess

    @track_performance(service_name="SpotService")
    async def reveal_spot(self, spot_id: int, caller_id: int) -> Spot:
        """
        Publish the answer of a challenge spot and score every guess.

        The state change is a conditional update on revealed_at, so of two
        concurrent reveals exactly one succeeds. The spot update and the
        guess scores are committed together.
        """
        spot = await self._lock_spot_or_404(spot_id)

        if spot.spotter_id != caller_id:
            raise ForbiddenError("Only the spotter can reveal this spot.")
        if not spot.is_challenge:
            raise InvalidStateError("This is not a challenge spot.")
        if spot.revealed_at is not None:
            raise InvalidStateError("This challenge has already been revealed.")

        answer = spot.correct_answer
        values = {"revealed_at": self.clock(), "is_identified": True}
        make, model = split_answer(answer)
        if make and model:
            values["make"] = make
            values["model"] = model

        try:
            result = await self.db.execute(
                update(Spot)
                .where(
                    Spot.id == spot_id,
                    Spot.is_challenge.is_(True),
                    Spot.revealed_at.is_(None),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.db.rollback()
                raise InvalidStateError("This challenge has already been revealed.")

            guesses = (
                await self.db.execute(select(Guess).where(Guess.spot_id == spot_id))
            ).scalars().all()

            correct = 0
            for guess in guesses:
                guess.is_correct = is_guess_correct(answer, guess.make, guess.model)
                correct += guess.is_correct

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

        await self.db.refresh(spot)

        prometheus_collector.record_reveal(correct=correct, incorrect=len(guesses) - correct)
        logger.info(
            "Spot revealed",
            extra={"spot_id": spot_id, "guesses_scored": len(guesses), "guesses_correct": correct},
        )
        return spot

    @track_performance(service_name="SpotService")
    async def get_spot(self, spot_id: int, viewer_id: Optional[int] = None) -> Dict:
        spot = await self._get_spot_or_404(spot_id)

        is_owner = viewer_id is not None and viewer_id == spot.spotter_id
        show_results = spot.revealed_at is not None or is_owner

        rows = (
            await self.db.execute(
                select(Guess, User.username)
                .join(User, User.id == Guess.user_id)
                .where(Guess.spot_id == spot_id)
                .order_by(Guess.created_at, Guess.id)
            )
        ).all()
        guesses = [serialize_guess(guess, show_results, username) for guess, username in rows]

        avg_rating, rating_count = (
            await self.db.execute(
                select(func.avg(SpotRating.rating), func.count(SpotRating.id))
                .where(SpotRating.spot_id == spot_id)
            )
        ).one()

        user_rating = None
        user_guess = None
        if viewer_id is not None:
            user_rating = (
                await self.db.execute(
                    select(SpotRating.rating)
                    .where(SpotRating.spot_id == spot_id, SpotRating.user_id == viewer_id)
                )
            ).scalar_one_or_none()
            user_guess = next((g for g in guesses if g["user_id"] == viewer_id), None)

        return {
            **serialize_spot(spot, is_owner),
            "guesses": guesses,
            "guess_count": len(guesses),
            "rating_count": rating_count,
            "avg_rarity": round(float(avg_rating), 1) if avg_rating is not None else None,
            "user_rating": user_rating,
            "user_guess": user_guess,
        }

    @track_performance(service_name="SpotService")
    async def list_spots(
        self,
        viewer_id: Optional[int] = None,
        filter: str = "all",
        query: Optional[str] = None,
        cursor: Optional[int] = None,
        limit: int = 20,
    ) -> Dict:
        if filter not in SPOT_FILTERS:
            raise ValidationError(f"Unknown filter '{filter}'. Expected one of: {', '.join(SPOT_FILTERS)}.")

        if filter == "mine" and viewer_id is None:
            return {"spots": [], "next_cursor": None}

        limit = max(1, min(limit, MAX_PAGE_SIZE))
        stmt = select(Spot).order_by(Spot.id.desc()).limit(limit)

        if filter == "challenges":
            stmt = stmt.where(Spot.is_challenge.is_(True))
        elif filter == "mine":
            stmt = stmt.where(Spot.spotter_id == viewer_id)

        if query and query.strip():
            pattern = f"%{query.strip().lower()}%"
            stmt = stmt.where(or_(
                func.lower(Spot.make).like(pattern),
                func.lower(Spot.model).like(pattern),
                func.lower(Spot.location_name).like(pattern),
                func.lower(Spot.caption).like(pattern),
            ))

        if cursor is not None:
            stmt = stmt.where(Spot.id < cursor)

        spots = (await self.db.execute(stmt)).scalars().all()
        spot_ids = [spot.id for spot in spots]

        guess_counts: Dict[int, int] = {}
        viewer_guesses: Dict[int, Guess] = {}
        if spot_ids:
            counts = await self.db.execute(
                select(Guess.spot_id, func.count(Guess.id))
                .where(Guess.spot_id.in_(spot_ids))
                .group_by(Guess.spot_id)
            )
            guess_counts = dict(counts.all())

            if viewer_id is not None:
                own = await self.db.execute(
                    select(Guess).where(Guess.spot_id.in_(spot_ids), Guess.user_id == viewer_id)
                )
                viewer_guesses = {guess.spot_id: guess for guess in own.scalars().all()}

        items = []
        for spot in spots:
            is_owner = viewer_id is not None and viewer_id == spot.spotter_id
            guess = viewer_guesses.get(spot.id)
            items.append({
                **serialize_spot(spot, is_owner),
                "guess_count": guess_counts.get(spot.id, 0),
                "has_guessed": guess is not None,
                "user_guess": (
                    serialize_guess(guess, spot.revealed_at is not None) if guess else None
                ),
            })

        next_cursor = spots[-1].id if len(spots) == limit else None
        return {"spots": items, "next_cursor": next_cursor}

    @track_performance(service_name="SpotService")
    async def update_spot(self, spot_id: int, caller_id: int, **changes) -> Spot:
        """Owner edits. Only keys that were actually sent should be passed."""
        spot = await self._get_spot_or_404(spot_id)
        if spot.spotter_id != caller_id:
            raise ForbiddenError("Only the spotter can edit this spot.")

        identity_fields = {"make", "model", "year"} & changes.keys()
        if identity_fields and spot.is_challenge and spot.revealed_at is None:
            raise InvalidStateError("Reveal the challenge before editing the car's identity.")

        for key in ("caption", "location_name", "make", "model", "year"):
            if key in changes:
                setattr(spot, key, changes[key])

        if "make" in changes:
            spot.is_identified = not _is_blank(spot.make)

        await self._commit()
        return spot

    @track_performance(service_name="SpotService")
    async def delete_spot(self, spot_id: int, caller_id: int, caller_role: str = "user") -> None:
        spot = await self._get_spot_or_404(spot_id)
        if spot.spotter_id != caller_id and not has_permission(caller_role, Permission.DELETE_ANY_SPOT):
            raise ForbiddenError("Only the spotter or a moderator can delete this spot.")

        try:
            await self.db.execute(delete(Guess).where(Guess.spot_id == spot_id))
            await self.db.execute(delete(SpotRating).where(SpotRating.spot_id == spot_id))
            await self.db.execute(delete(SpotComment).where(SpotComment.spot_id == spot_id))
            await self.db.delete(spot)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

        logger.info("Spot deleted", extra={"spot_id": spot_id, "deleted_by": caller_id})

    @track_performance(service_name="SpotService")
    async def rate_spot(self, spot_id: int, user_id: int, rating: int) -> Dict:
        """Upsert a 1-10 rarity rating and refresh the spot's cached rarity score."""
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 10:
            raise ValidationError("Rating must be between 1 and 10.")

        spot = await self._get_spot_or_404(spot_id)

        existing = (
            await self.db.execute(
                select(SpotRating).where(SpotRating.spot_id == spot_id, SpotRating.user_id == user_id)
            )
        ).scalar_one_or_none()

        if existing is None:
            self.db.add(SpotRating(spot_id=spot_id, user_id=user_id, rating=rating))
        else:
            existing.rating = rating

        try:
            await self.db.flush()
            avg_rating, rating_count = (
                await self.db.execute(
                    select(func.avg(SpotRating.rating), func.count(SpotRating.id))
                    .where(SpotRating.spot_id == spot_id)
                )
            ).one()
            spot.rarity_score = math.floor(float(avg_rating) + 0.5) if avg_rating is not None else None
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateError("Your rating was updated concurrently. Please retry.")
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

        return {
            "rating": rating,
            "avg_rating": round(float(avg_rating), 1) if avg_rating is not None else None,
            "rating_count": rating_count,
        }
