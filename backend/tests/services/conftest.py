"""Service test fixtures: async DB, caller-bound ports and the FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use a session from the test engine
    - Every test gets its own MembershipCache (app.state and direct service calls)

Design Decisions:
    - SQLite in-memory: fast, no external dependency; the partial unique index and
      ON CONFLICT DO NOTHING both exist on SQLite, so the invariants are exercised
    - Ports are built per identity from one shared session, the same way a single
      request would see the store
"""

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from app.core.domain_types import Identity
from app.core.membership_cache import MembershipCache, RequestContext
from app.db.base import Base
from app.infrastructure.data_access import (
    SqlAdministrativeReader,
    SqlDataAccess,
    SqlIdentityDirectory,
)
from app.infrastructure.database import get_db, DatabaseSessionManager
import app.infrastructure.database as db_module
import app.models  # noqa: F401
from app.main import app
from app.services.consistency_fallback import ConsistencyFallback
from app.services.membership_resolver import MembershipResolver


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
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
def cache():
    return MembershipCache()


@pytest.fixture
def ctx_for(cache):
    """Build a RequestContext for an identity, sharing the test's cache."""
    def _ctx(identity: Identity | None) -> RequestContext:
        return RequestContext(identity=identity, cache=cache)
    return _ctx


@pytest.fixture
def port_for(test_db):
    """Caller-bound SqlDataAccess over the shared test session."""
    def _port(identity: Identity) -> SqlDataAccess:
        return SqlDataAccess(test_db, identity)
    return _port


@pytest.fixture
def directory(test_db):
    return SqlIdentityDirectory(test_db)


@pytest.fixture
def resolver_for(test_db, port_for):
    def _resolver(identity: Identity) -> MembershipResolver:
        port = port_for(identity)
        fallback = ConsistencyFallback(port, SqlAdministrativeReader(test_db))
        return MembershipResolver(port, fallback, self_heal_retry_delay_ms=0)
    return _resolver


@pytest.fixture
async def client(test_engine, test_session_factory):
    """FastAPI test client with DB dependency overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.membership_cache = MembershipCache()

    # Readiness probe reads db_manager directly
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager

