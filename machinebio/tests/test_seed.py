import pytest
from sqlalchemy import func, select

from machinebio.models import Car, HistoryEntry, Make, User
from machinebio.scripts.seed_data import seed
from machinebio.services.ranking import RankingService


@pytest.mark.asyncio
async def test_seed_inserts_catalog_users_and_cars(async_db_session):
    summary = await seed(async_db_session)

    assert summary == {"users": 2, "cars": 3, "generations": 7}
    assert (await async_db_session.execute(select(func.count(Make.id)))).scalar_one() == 3
    assert (await async_db_session.execute(select(func.count(Car.id)))).scalar_one() == 3
    assert (await async_db_session.execute(select(func.count(HistoryEntry.id)))).scalar_one() == 3

    founder = (
        await async_db_session.execute(select(User).where(User.username == "founder"))
    ).scalar_one()
    assert founder.role == "founder"


@pytest.mark.asyncio
async def test_seeded_data_is_rankable(async_db_session):
    await seed(async_db_session)

    leaderboard = await RankingService(async_db_session).investment_leaderboard()

    assert [row["total_investment"] for row in leaderboard] == [8300, 600]
    assert leaderboard[0]["model"] == "Supra"
