"""Database Session Manager — tests for error mapping and engine lifecycle.

Tests cover:
    - SQLAlchemy errors raised inside a session surface as DatabaseError
    - health_check reports connectivity on SQLite
    - close_db disposes the engine once and clears the singleton
    - the app lifespan closes the database after stopping the event system
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

import engage.infrastructure.activity_log as activity_log_module
import engage.infrastructure.database as db_module
import engage.infrastructure.event_system as event_system_module
import engage.main as main_module
from engage.core.errors import DatabaseError
from engage.infrastructure.database import (
    DatabaseSessionManager, close_db, init_db,
)

SQLITE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def manager():
    manager = DatabaseSessionManager(SQLITE_URL)
    yield manager
    await manager.close()


@pytest.fixture
def restore_singletons():
    saved = (
        db_module.db_manager,
        event_system_module.event_system,
        activity_log_module.activity_log,
    )
    yield
    (
        db_module.db_manager,
        event_system_module.event_system,
        activity_log_module.activity_log,
    ) = saved


@pytest.mark.parametrize("raised, operation", [
    (IntegrityError("INSERT", {}, Exception("duplicate")), "commit"),
    (OperationalError("SELECT", {}, Exception("gone away")), "execute"),
    (SQLAlchemyError("unexpected"), "unknown"),
])
async def test_session_maps_errors(manager, raised, operation):
    with pytest.raises(DatabaseError) as exc_info:
        async with manager.session():
            raise raised
    assert exc_info.value.operation == operation
    assert exc_info.value.http_status == 503
    assert exc_info.value.__cause__ is raised


async def test_health_check_on_sqlite(manager):
    assert await manager.health_check() is True


async def test_close_db_disposes_once(restore_singletons):
    manager = init_db(SQLITE_URL)
    assert db_module.db_manager is manager

    await close_db()
    assert db_module.db_manager is None
    await close_db()


async def test_lifespan_closes_database(monkeypatch, restore_singletons):
    monkeypatch.setattr(main_module, "setup_logging", lambda *args: None)

    async with main_module.lifespan(main_module.app):
        assert db_module.db_manager is not None
        events = event_system_module.event_system
        assert events is not None

    assert db_module.db_manager is None
    assert events._sweeper is None
