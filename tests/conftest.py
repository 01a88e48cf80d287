import os

# Settings are read once and cached, so the test database and admin key
# have to be in place before anything from bakeoff is imported.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ADMIN_KEY"] = "test-admin-key"
os.environ["SECRET_KEY"] = "test-secret"

from dataclasses import dataclass

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bakeoff.core.database import Base, get_db
from bakeoff.core.events import EventBroker, get_broker
from bakeoff.main import app
from bakeoff.models.models import Contestant, Episode, Player, Season, SeasonStatus

ADMIN_KEY = "test-admin-key"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def broker():
    return EventBroker(queue_size=10)


@pytest_asyncio.fixture
async def client(session_factory, broker):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_broker] = lambda: broker
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@dataclass
class League:
    season: Season
    bakers: list[Contestant]
    episodes: list[Episode]
    alice: Player
    bob: Player
    admin: Player

    @property
    def episode(self) -> Episode:
        return self.episodes[0]


async def add_player(db, username: str, display_name: str, is_admin: bool = False) -> Player:
    # Service tests never log in, so the hash is never checked
    player = Player(
        username=username,
        display_name=display_name,
        password_hash="not-a-real-hash",
        is_admin=is_admin,
    )
    db.add(player)
    await db.flush()
    return player


async def add_episode(db, season: Season, number: int, is_active: bool = True) -> Episode:
    episode = Episode(season_id=season.id, episode_number=number, is_active=is_active)
    db.add(episode)
    await db.flush()
    return episode


@pytest_asyncio.fixture
async def league(db) -> League:
    """A season with bakers A-F, three open episodes, two players and an admin."""
    season = Season(season_number=15, name="Series 15", status=SeasonStatus.ACTIVE, star_baker_pick_limit=2)
    db.add(season)
    await db.flush()

    bakers = [Contestant(season_id=season.id, name=name) for name in "ABCDEF"]
    db.add_all(bakers)
    await db.flush()

    episodes = [await add_episode(db, season, n) for n in (1, 2, 3)]
    alice = await add_player(db, "alice", "Alice")
    bob = await add_player(db, "bob", "bob")
    admin = await add_player(db, "admin", "Admin", is_admin=True)
    return League(season, bakers, episodes, alice, bob, admin)


async def register(client: AsyncClient, username: str, display_name: str, admin: bool = False) -> dict:
    body = {"username": username, "display_name": display_name, "password": "secret123"}
    if admin:
        body["admin_key"] = ADMIN_KEY
    response = await client.post("/api/auth/register", json=body)
    assert response.status_code == 200, response.text
    data = response.json()
    return {"id": data["player_id"], "headers": {"Authorization": f"Bearer {data['access_token']}"}}
