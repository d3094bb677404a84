# tests/conftest.py — Shared test fixtures
import os

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Use a throwaway SQLite file for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User
from auth import AuthService
from database import build_engine, get_db_session
from main import app
import card_engine
import project_registry


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = build_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def human_user(db_session):
    """A human user"""
    return await project_registry.create_user(db_session, "alice", "human", "alice@example.dev")


@pytest_asyncio.fixture
async def agent_user(db_session):
    """An AI agent user"""
    return await project_registry.create_user(db_session, "builder-bot", "ai")


@pytest_asyncio.fixture
async def test_project(db_session):
    return await project_registry.create_project(
        db_session, "fivetwo", "https://github.com/example/fivetwo",
    )


@pytest_asyncio.fixture
async def make_card(db_session, test_project, human_user):
    """Factory for cards in the test project"""
    async def _make(title="Fix crash", **kwargs):
        return await card_engine.create_card(
            db_session,
            project_id=kwargs.pop("project_id", test_project.id),
            title=title,
            created_by=kwargs.pop("created_by", human_user.id),
            **kwargs,
        )
    return _make


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}
