"""
Seed script: Creates an admin, a few players and a demo season with its bakers.
Run with: python -m bakeoff.scripts.seed
"""
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bakeoff.core.database import AsyncSessionLocal, engine, Base
from bakeoff.core.security import hash_password
from bakeoff.models.models import Contestant, Episode, Player, Season, SeasonStatus

DEFAULT_PASSWORD = "bakeoff123"
SEASON_NUMBER = 1

PLAYERS = [
    {"username": "admin", "display_name": "Admin", "is_admin": True},
    {"username": "prue", "display_name": "Prue", "is_admin": False},
    {"username": "paul", "display_name": "Paul", "is_admin": False},
    {"username": "noel", "display_name": "Noel", "is_admin": False},
]

BAKERS = [
    {"name": "Abigail Hart", "age": 29, "occupation": "Veterinary Nurse", "hometown": "Bristol"},
    {"name": "Ben Okafor", "age": 34, "occupation": "Structural Engineer", "hometown": "Leeds"},
    {"name": "Carys Morgan", "age": 61, "occupation": "Retired Headteacher", "hometown": "Swansea"},
    {"name": "Dev Patel", "age": 24, "occupation": "Junior Doctor", "hometown": "Leicester"},
    {"name": "Elsie Brown", "age": 47, "occupation": "Florist", "hometown": "Norwich"},
    {"name": "Finn Gallagher", "age": 38, "occupation": "Firefighter", "hometown": "Belfast"},
    {"name": "Grace Liu", "age": 31, "occupation": "Software Tester", "hometown": "Manchester"},
    {"name": "Hamish Reid", "age": 55, "occupation": "Fisherman", "hometown": "Aberdeen"},
    {"name": "Imogen Shaw", "age": 26, "occupation": "Primary Teacher", "hometown": "Brighton"},
    {"name": "Jamal Idris", "age": 42, "occupation": "Bus Driver", "hometown": "Birmingham"},
    {"name": "Kate Whitfield", "age": 36, "occupation": "Midwife", "hometown": "York"},
    {"name": "Leo Santos", "age": 20, "occupation": "Student", "hometown": "London"},
]


async def seed_data(db: AsyncSession) -> list[str]:
    """Create the demo data inside ``db``. Safe to run twice; existing rows are skipped."""
    results = []

    for player_data in PLAYERS:
        existing = await db.execute(
            select(Player).where(Player.username == player_data["username"])
        )
        if existing.scalar_one_or_none():
            results.append(f"Player '{player_data['username']}' already exists")
            continue

        db.add(Player(
            username=player_data["username"],
            display_name=player_data["display_name"],
            password_hash=hash_password(DEFAULT_PASSWORD),
            is_admin=player_data["is_admin"],
        ))
        results.append(
            f"Created player: {player_data['display_name']}"
            f" ({'admin' if player_data['is_admin'] else 'player'})"
        )

    await db.flush()

    existing_season = await db.execute(
        select(Season).where(Season.season_number == SEASON_NUMBER)
    )
    if existing_season.scalar_one_or_none():
        results.append(f"Season {SEASON_NUMBER} already exists")
        return results

    season = Season(
        season_number=SEASON_NUMBER,
        name=f"Bake Off Series {SEASON_NUMBER}",
        status=SeasonStatus.ACTIVE,
    )
    db.add(season)
    await db.flush()

    for baker in BAKERS:
        db.add(Contestant(season_id=season.id, **baker))
    db.add(Episode(season_id=season.id, episode_number=1, title="Cake Week", is_active=True))
    await db.flush()

    results.append(f"Created season {SEASON_NUMBER} with {len(BAKERS)} bakers and an open first episode")
    return results


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        for line in await seed_data(db):
            print(f"  {line}")
        await db.commit()

    print("\nSeed complete!")


if __name__ == "__main__":
    print("Seeding Bake Off Predictor...\n")
    asyncio.run(seed())
