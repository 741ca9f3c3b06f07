"""Shared pytest fixtures for ZimConnect tests."""
import os
import uuid

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REALTIME_BACKEND", "memory")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import zimconnect.models  # noqa: F401  (registers every table on Base.metadata)
from zimconnect.database import Base
from zimconnect.models.profile import Profile
from zimconnect.realtime.cache import QueryCache
from zimconnect.realtime.feed import ChangeFeed
from zimconnect.services.ledger_service import LedgerService
from zimconnect.services.message_service import MessageService
from zimconnect.services.notification_service import NotificationService
from zimconnect.services.profile_service import ProfileService
from zimconnect.services.settings_service import SettingsService


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def feed():
    feed = ChangeFeed()
    yield feed
    await feed.close()


@pytest.fixture
def cache():
    return QueryCache()


@pytest.fixture
def profile_service(feed):
    return ProfileService(feed=feed)


@pytest.fixture
def settings_service(profile_service):
    return SettingsService(profile_service=profile_service)


@pytest.fixture
def notification_service(feed, settings_service):
    return NotificationService(feed=feed, settings_service=settings_service)


@pytest.fixture
def ledger(feed, notification_service):
    return LedgerService(feed=feed, notification_service=notification_service)


@pytest.fixture
def message_service(feed, ledger, notification_service):
    return MessageService(feed=feed, ledger=ledger, notification_service=notification_service)


@pytest.fixture
def make_profile(db):
    """Insert a complete profile straight into the store; overrides win."""

    async def _make(**overrides) -> Profile:
        fields = {
            "id": str(uuid.uuid4()),
            "first_name": "Test",
            "last_name": "User",
            "age": 28,
            "gender": "woman",
            "city": "Atlanta",
            "state": "Georgia",
            "bio": "Here for the good conversations.",
            "interests": ["hiking"],
            "photos": ["https://example.com/p.jpg"],
        }
        fields.update(overrides)
        profile = Profile(**fields)
        profile.profile_complete = profile.compute_complete()
        db.add(profile)
        await db.commit()
        return profile

    return _make


@pytest.fixture
def sample_user_id():
    return str(uuid.uuid4())
