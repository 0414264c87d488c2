"""
Test infrastructure for the articles service.

Strategy
--------
- SQLite in-memory via aiosqlite with StaticPool, so every task shares the
  one connection (an in-memory database is connection-scoped).
- ``get_db`` is overridden so HTTP requests use the test session factory.
- Tables are created before and dropped after each test.
- Redis is disabled by default (``cache._redis = None``); the
  CacheManager treats that as "always miss", so services hit the database.
  Tests that exercise caching request the ``redis_cache`` fixture, which
  plugs in an in-memory stand-in with the handful of async Redis methods
  the CacheManager calls.
- Attachment files live under a per-test ``tmp_path``.
"""
import fnmatch

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.cache import cache
from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.middleware import install_query_counter
from app.models import Attachment, Tag, User

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# In-memory Redis stand-in
# ---------------------------------------------------------------------------

class InMemoryRedis:
    """Implements only the Redis calls CacheManager makes."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str):
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self.store[key] = value
        self.ttls[key] = ex

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*"):
        for key in list(self.store):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self) -> None:
        pass

    def expire_all(self) -> None:
        """Simulate every TTL running out."""
        self.store.clear()
        self.ttls.clear()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def no_redis():
    """Every test starts with the cache disabled and fresh counters."""
    cache._redis = None
    cache._hits = 0
    cache._misses = 0
    yield
    cache._redis = None


@pytest.fixture
def redis_cache() -> InMemoryRedis:
    fake = InMemoryRedis()
    cache._redis = fake
    return fake


@pytest.fixture(autouse=True)
def attachment_dir(tmp_path, monkeypatch):
    directory = tmp_path / "attachments"
    directory.mkdir()
    monkeypatch.setattr(settings, "ATTACHMENT_DIR", str(directory))
    return directory


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for tests that call services directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

async def make_user(
    db: AsyncSession,
    username: str = "owner",
    email: str | None = None,
    is_admin: bool = False,
) -> User:
    user = User(username=username, email=email or f"{username}@example.com", is_admin=is_admin)
    db.add(user)
    await db.flush()
    return user


async def make_tags(db: AsyncSession, *names: str) -> list[Tag]:
    tags = [Tag(name=name, slug=name.lower()) for name in names]
    db.add_all(tags)
    await db.flush()
    return tags


async def make_attachment(db: AsyncSession, directory, name: str, article_id=None) -> Attachment:
    """Create an Attachment row and its file on disk."""
    (directory / name).write_text("attachment body")
    attachment = Attachment(name=name, article_id=article_id)
    db.add(attachment)
    await db.flush()
    return attachment


def auth(user_id: int) -> dict:
    """Headers identifying the caller the way the upstream gateway does."""
    return {"X-User-Id": str(user_id)}
