"""
SQLAlchemy engine and session factory.

Everything that touches the database runs inside the FastAPI event loop —
request handlers and the dispatch tasks spawned from them — so a single
async engine (asyncpg driver) is enough. Dispatch tasks outlive the request
that started them, so they open their own sessions from `AsyncSessionLocal`
instead of borrowing the request's session.

Job progress is NOT stored here: it lives in memory (jobs/registry.py).
"""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from config.settings import settings


def utcnow() -> datetime:
    """Timezone-aware now, used for column defaults."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models. SQLAlchemy uses this to track table metadata."""
    pass


async_engine = create_async_engine(settings.database_url, echo=False)
AsyncSessionLocal = async_sessionmaker(async_engine, expire_on_commit=False)
