"""
Test fixtures for the Player authorization backend.

Every test gets its own in-memory SQLite database built from the models and
seeded with the permission catalog, its own event dispatcher and its own
claims cache.  API tests drive the FastAPI app in-process through httpx.
"""
import os
import uuid

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from player.database import Base, get_db, make_session_factory
from player.events import EventDispatcher
from player.main import app
from player.middleware.auth import create_access_token, get_cache
from player.models import Team, TeamMembership, User, View
from player.rbac import seed_catalog
from player.services import memberships, roles, teams, users, views
from player.services.cache_invalidation import register_cache_invalidation
from player.services.claims_cache import ClaimsCache

TEST_DATABASE_URL = "sqlite+aiosqlite://"
BASE_URL = "http://test"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def auth_headers(user_id: uuid.UUID, name: str | None = None) -> dict:
    """Return auth header dict carrying a token for *user_id*."""
    token = create_access_token({"sub": user_id, "name": name})
    return {"Authorization": f"Bearer {token}"}


async def make_user(db, name: str = "user", role_name: str | None = None) -> User:
    """Create a User, optionally holding the named Role."""
    role_id = (await roles.get_role_by_name(db, role_name)).id if role_name else None
    return await users.create_user(db, uuid.uuid4(), name, role_id)


async def make_view(db, creator: User, name: str = "Exercise") -> View:
    """Create a View without its Admin team."""
    return await views.create_view(db, name, creator.id, create_admin_team=False)


async def make_team(db, view: View, name: str = "Blue", role_name: str | None = None) -> Team:
    """Create a Team in *view* with the named Team Role (default role if None)."""
    role_id = None
    if role_name is not None:
        role_id = (await roles.get_team_role_by_name(db, role_name)).id
    return await teams.create_team(db, view.id, name, role_id)


async def join(db, team: Team, user: User) -> TeamMembership:
    return await memberships.add_user_to_team(db, team.id, user.id)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def cache():
    """Claims cache private to one test."""
    return ClaimsCache()


@pytest.fixture
def event_dispatcher():
    """Event dispatcher private to one test."""
    return EventDispatcher()


@pytest_asyncio.fixture
async def session_factory(engine, event_dispatcher, cache):
    """Session factory wired to cache invalidation, over a seeded catalog."""
    factory = make_session_factory(engine, event_dispatcher)
    register_cache_invalidation(event_dispatcher, cache, factory)
    async with factory() as session:
        await seed_catalog(session)
    return factory


@pytest_asyncio.fixture
async def db(session_factory):
    """One session for direct service calls."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Principal fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def admin(db):
    """User holding the Administrator role."""
    return await make_user(db, "admin", "Administrator")


@pytest_asyncio.fixture
async def admin_headers(admin):
    """Auth headers for the administrator."""
    return auth_headers(admin.id, admin.name)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client(session_factory, cache):
    """In-process async HTTP client bound to the test database and cache."""

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_cache] = lambda: cache
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL, timeout=30.0) as c:
        yield c
    app.dependency_overrides.clear()
