"""Service test fixtures — async DB, seeded directory and FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - db_manager patched: event handlers write audit/notifications through it
    - Event system and activity log singletons reset after each client test

Design Decisions:
    - SQLite in-memory with StaticPool: request sessions and handler sessions
      must see the same database
    - Directory seeded identically in SQLite and in the memory store:
      org 1 = alice (1), bob (2), carol (3, admin); org 2 = dave (4)
    - Domain tests run over the memory store with a controllable clock
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

import engage.infrastructure.activity_log as activity_log_module
import engage.infrastructure.database as db_module
import engage.infrastructure.event_system as event_system_module
from engage.config import get_settings
from engage.core.domain_types import MemberRole
from engage.core.social_entities import Member
from engage.core.social_rules import EngagementThresholds
from engage.db.base import Base
from engage.infrastructure.database import get_db, DatabaseSessionManager
from engage.infrastructure.event_system import EventSystem
from engage.infrastructure.memory_store import MemorySocialStore
from engage.main import app, build_event_system
from engage.models.member import MemberRecord
from engage.models.organization import Organization
from engage.services.social_domain import SocialDomain

MEMBERS = [
    Member(1, 1, "Alice Silva", "alice", "alice@acme.test", "Engineering"),
    Member(2, 1, "Bob Costa", "bob", "bob@acme.test", "Sales"),
    Member(3, 1, "Carol Admin", "carol", "carol@acme.test", role=MemberRole.ADMIN),
    Member(4, 2, "Dave Other", "dave", "dave@globex.test"),
]


class FakeClock:
    """Callable clock; advance() moves time forward deterministically."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def seeded_db(test_db):
    """Organizations and members inserted into the test DB."""
    test_db.add_all([
        Organization(id=1, name="Acme", slug="acme"),
        Organization(id=2, name="Globex", slug="globex"),
    ])
    for m in MEMBERS:
        test_db.add(MemberRecord(
            id=m.id, organization_id=m.organization_id, name=m.name,
            username=m.username, email=m.email, department=m.department,
            role=m.role.value, is_active=m.is_active,
        ))
    await test_db.commit()
    return test_db


@pytest.fixture
def memory_store():
    store = MemorySocialStore()
    for member in MEMBERS:
        store.add_member(member)
    return store


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def events():
    return EventSystem(handler_timeout_ms=1000)


@pytest.fixture
def thresholds():
    return EngagementThresholds(
        viral_reactions=2, high_engagement_comments=2, high_reach_views=3,
    )


@pytest.fixture
def domain(memory_store, events, thresholds, clock):
    return SocialDomain(memory_store, memory_store, events, thresholds, clock)


@pytest.fixture
async def client(test_engine, test_session_factory, seeded_db):
    """FastAPI test client with DB dependency overridden."""
    # Override get_db for route-level dependency injection
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    # Patch db_manager for event handlers that use it directly
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    # ASGITransport does not run the lifespan
    build_event_system(get_settings())

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
    event_system_module.event_system = None
    activity_log_module.activity_log = None


@pytest.fixture
def as_user():
    """Build identity headers: as_user(user_id, organization_id=1)."""
    def headers(user_id: int, organization_id: int = 1, **extra) -> dict:
        return {
            "X-Organization-Id": str(organization_id),
            "X-User-Id": str(user_id),
            **extra,
        }
    return headers
