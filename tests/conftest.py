"""
Shared fixtures.

Every test gets its own SQLite database file so sessions opened by the sync
pipeline see the same data as the test itself.
"""

import json
import os

os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_ENABLED", "false")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from socialgraph.core.cache import TTLCache
from socialgraph.core.config import SocialConfig
from socialgraph.core.database import Base
from socialgraph.models import Relationship, Suggestion, User
from socialgraph.services.relationship import RelationshipService

USERS = [
    # email, name, phone, phone_verified
    ("alice@example.com", "Alice Kim", None, False),
    ("bob@example.com", "Bob Lee", None, False),
    ("carol@example.com", "Carol Park", "+821055556666", True),
    ("dave@example.com", "Dave Choi", None, False),
    ("erin@example.com", "Erin Han", None, False),
    ("frank@example.com", "Frank Yoon", "+821077778888", False),
]


class FakeRedis:
    """In-memory stand-in for RedisClient"""

    def __init__(self):
        self.store = {}

    @property
    def connected(self) -> bool:
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, expire=3600):
        self.store[key] = value
        return True

    async def delete(self, key):
        return self.store.pop(key, None) is not None

    async def exists(self, key):
        return key in self.store

    async def ttl(self, key):
        return 42 if key in self.store else 0

    async def get_json(self, key):
        value = self.store.get(key)
        return json.loads(value) if value else None

    async def set_json(self, key, value, expire=3600):
        self.store[key] = json.dumps(value)
        return True


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'social.db'}")
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
def config():
    return SocialConfig(batch_size=2, max_concurrency=1, batch_delay_ms=0, cooldown_seconds=0)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest_asyncio.fixture
async def users(session_factory):
    """Seed the directory; returns first name -> email"""
    async with session_factory() as session:
        for email, name, phone, verified in USERS:
            session.add(
                User(
                    email=email,
                    name=name,
                    username=email.split("@")[0],
                    phone_number=phone,
                    phone_verified=verified,
                )
            )
        await session.commit()
    return {email.split("@")[0]: email for email, _, _, _ in USERS}


@pytest.fixture
def befriend(session_factory, config):
    """Connect two accounts directly"""

    async def _befriend(user_email, friend_email):
        async with session_factory() as session:
            service = RelationshipService(session, config=config)
            return await service.auto_accept_friendship(user_email, friend_email)

    return _befriend


@pytest.fixture
def fetch_rows(session_factory):
    """Fresh read of every relationship and suggestion row"""

    async def _fetch(model=Relationship):
        async with session_factory() as session:
            result = await session.execute(select(model))
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
def fetch_suggestions(fetch_rows):
    async def _fetch():
        return await fetch_rows(Suggestion)

    return _fetch


@pytest_asyncio.fixture
async def api_client(session_factory, config, users):
    from socialgraph.api.deps import get_social_config, get_user_cache
    from socialgraph.core.database import get_db, get_session_factory
    from socialgraph.core.redis import RedisClient, get_redis
    from socialgraph.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    cache = TTLCache(ttl_seconds=60, max_size=100)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_social_config] = lambda: config
    app.dependency_overrides[get_redis] = lambda: RedisClient(url="redis://localhost:6379/0")
    app.dependency_overrides[get_user_cache] = lambda: cache

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
