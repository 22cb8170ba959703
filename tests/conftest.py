"""Pytest configuration and fixtures shared by the test suite."""

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("ENABLE_PROMETHEUS_METRICS", "false")
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("DATABASE_URL", None)
os.environ.pop("REDIS_URL", None)
os.environ.pop("CELERY_BROKER_URL", None)

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from apps.api.app import models  # noqa: E402,F401
from apps.api.app.core.config import get_settings  # noqa: E402
from apps.api.app.db.session import Base  # noqa: E402

get_settings.cache_clear()

NOW = datetime(2024, 5, 10, 20, 0, 0)


@pytest.fixture
def now() -> datetime:
    """Fixed clock used by the job tests (a Friday evening, UTC)."""
    return NOW


@pytest_asyncio.fixture
async def db_engine():
    """Create an in-memory SQLite database engine for testing."""
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
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(session_factory):
    """Insert ORM objects in their own committed session."""

    async def _seed(*objects):
        async with session_factory() as session:
            session.add_all(objects)
            await session.commit()
        return objects

    return _seed
