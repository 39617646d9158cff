"""Shared test fixtures: in-memory SQLite DB, async session, test client."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app import models  # noqa: F401
from app.core.auth import SESSION_TOKEN_HEADER, login_user, register_user
from app.dependencies import get_db
from app.main import app
from app.models.base import Base
from app.models.user import UserRole
from app.services import notification_service

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "SecurePass123!"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)


# Enable foreign key enforcement in SQLite (off by default).
@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """Yield a test DB session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncClient:
    """Yield an httpx AsyncClient wired to the test DB."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def notifications():
    """Capture notifications in memory for the duration of a test."""
    dispatcher = notification_service.InMemoryDispatcher()
    previous = notification_service.set_dispatcher(dispatcher)
    yield dispatcher
    notification_service.set_dispatcher(previous)


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    """Factory: register a user with a role, log in, return (user, auth headers)."""

    async def _make(email: str, role: UserRole = UserRole.client, **names):
        user = await register_user(
            db_session,
            email=email,
            password=TEST_PASSWORD,
            role=role,
            allow_admin=True,
            **names,
        )
        _, token = await login_user(db_session, email=email, password=TEST_PASSWORD)
        return user, {SESSION_TOKEN_HEADER: token}

    return _make


@pytest_asyncio.fixture
async def file_sessions(tmp_path):
    """Session factory on a file-backed SQLite DB.

    Each session gets its own connection, so concurrent writers contend the
    way they do in production.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
