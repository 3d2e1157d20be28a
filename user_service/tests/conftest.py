"""
Pytest fixtures for the user service tests.

Tests run against an in-memory SQLite database (aiosqlite) so no PostgreSQL
server is needed.
"""
import os

# Must be set before the service modules read them
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from user_service.base_microservice import Base, get_db_session
from user_service.auth.jwt import TokenIssuer, get_token_issuer
from user_service.auth.seed import seed_roles
from user_service.auth.store import SqlAlchemyUserStore
from user_service.auth.users import UserService
from user_service.main import app

TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_SECRET = "unit-test-signing-secret-with-at-least-32-bytes"
TEST_ISSUER = "test-issuer"
TEST_AUDIENCE = "test-audience"


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh in-memory database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await seed_roles(session)
    return factory


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create a test database session with the reference roles seeded."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session):
    return SqlAlchemyUserStore(db_session)


@pytest.fixture
def token_issuer():
    return TokenIssuer(
        secret_key=TEST_SECRET,
        issuer=TEST_ISSUER,
        audience=TEST_AUDIENCE,
        expire_minutes=60,
    )


@pytest.fixture
def user_service(store, token_issuer):
    return UserService(store, token_issuer)


@pytest_asyncio.fixture
async def client(session_factory, token_issuer):
    """HTTP client against the app, wired to the test database and issuer."""
    async def override_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_token_issuer] = lambda: token_issuer

    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        yield ac

    app.dependency_overrides.clear()
