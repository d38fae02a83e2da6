"""
Shared test fixtures.

These replace real infrastructure with lightweight local alternatives:
- PostgreSQL → SQLite file in a temp dir (via aiosqlite)
- SMTP server → FakeTransport that records messages (or fails on demand)
- HTTP server → httpx.AsyncClient with ASGI transport (no network)

This means tests:
- Run without Docker
- Never send real email
- Are fully isolated (each test gets a fresh database and a fresh app)

The database is a file rather than :memory: because campaign sends write
from a background task through their own sessions while requests use theirs.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from config.settings import Settings
from models.base import Base
from api.main import create_app
from api.dependencies import get_db, get_mail_transport, get_session_factory, get_settings
from tests.helpers import FakeTransport


@pytest.fixture
def test_settings():
    """SMTP 'configured' (the transport is faked) and no batch delay."""
    return Settings(
        SMTP_HOST="smtp.test",
        SMTP_USER="mailer",
        SMTP_PASS="secret",
        DEFAULT_SENDER_EMAIL="sender@example.com",
        BATCH_SIZE=1,
        BATCH_DELAY_MINUTES=0,
        RESULT_TIMEZONE="UTC",
        TRACKING_BASE_URL="http://test",
    )


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create a fresh database for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(session_factory):
    """Create a database session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def app(session_factory, test_settings, fake_transport):
    """
    The FastAPI app with test dependencies.

    dependency_overrides tells FastAPI: "instead of using the real get_db,
    settings and SMTP transport, use these test versions." Each request gets
    its own session, as it would in production.
    """
    app = create_app(test_settings)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_mail_transport] = lambda: fake_transport

    yield app
    await app.state.launcher.shutdown()


@pytest_asyncio.fixture
async def client(app):
    """
    Create a test HTTP client that talks directly to the FastAPI app.

    ASGITransport means requests go directly to the app in-process,
    no HTTP server or network involved.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
