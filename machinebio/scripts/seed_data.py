import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.passwords_handler import hash_password_async
from machinebio.core.db import AsyncSessionLocal, Base, engine
from machinebio.models import User, Make, CarModel, Generation, Car, HistoryEntry

logger = logging.getLogger(__name__)

CATALOG = {
    "Toyota": {"Supra": ["A80", "A90"], "Corolla": ["E210"]},
    "Volkswagen": {"Golf": ["Mk7", "Mk8"]},
    "Audi": {"TT": ["8N", "8J"]},
}


def slugify(name: str) -> str:
    return name.lower().replace(" ", "-")


async def seed(db: AsyncSession, password: str = "password123") -> dict:
    """Inserts a small catalog, two users and a few cars with history."""
    generations = {}
    for make_name, models in CATALOG.items():
        make = Make(name=make_name, slug=slugify(make_name))
        db.add(make)
        await db.flush()
        for model_name, chassis_codes in models.items():
            model = CarModel(make_id=make.id, name=model_name, slug=slugify(model_name))
            db.add(model)
            await db.flush()
            for code in chassis_codes:
                generation = Generation(model_id=model.id, name=code, display_name=f"{model_name} {code}")
                db.add(generation)
                await db.flush()
                generations[(make_name, model_name, code)] = generation

    hashed = await hash_password_async(password, rounds=4)
    founder = User(email="founder@machinebio.dev", username="founder", password=hashed, country="RS", role="founder")
    driver = User(email="driver@machinebio.dev", username="driver", password=hashed, country="DE", role="user")
    db.add_all([founder, driver])
    await db.flush()

    cars = [
        Car(owner_id=founder.id, generation_id=generations[("Toyota", "Supra", "A80")].id,
            make="Toyota", model="Supra", year=1997, horsepower=330, torque=441),
        Car(owner_id=driver.id, generation_id=generations[("Volkswagen", "Golf", "Mk7")].id,
            make="Volkswagen", model="Golf GTI", year=2015, horsepower=230, torque=350),
        Car(owner_id=driver.id, make="Lada", model="Niva", year=1989, horsepower=80, torque=121),
    ]
    db.add_all(cars)
    await db.flush()

    db.add_all([
        HistoryEntry(car_id=cars[0].id, title="Single turbo conversion", cost=6500),
        HistoryEntry(car_id=cars[0].id, title="Coilovers", cost=1800),
        HistoryEntry(car_id=cars[1].id, title="Stage 1 tune", cost=600),
    ])
    await db.commit()

    logger.info("Seed data inserted successfully")
    return {"users": 2, "cars": len(cars), "generations": len(generations)}


async def main():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncSessionLocal() as db:
        await seed(db)


if __name__ == "__main__":
    asyncio.run(main())
