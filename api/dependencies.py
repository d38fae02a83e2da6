"""
FastAPI dependency injection.

How this works:
- An endpoint declares `db: AsyncSession = Depends(get_db)`
- FastAPI calls get_db() before your endpoint runs, creating a DB session
- Your endpoint receives the session and uses it
- After the endpoint returns (or raises), the session is automatically closed

The in-memory dispatch machinery (registry, result store, dispatcher) is
built once in create_app() and lives on app.state; the getters below just
hand it out. Tests swap any of them through app.dependency_overrides.
"""

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import Settings
from jobs.registry import JobRegistry
from jobs.results import ResultStore
from models.base import AsyncSessionLocal
from services.dispatch import Dispatcher
from services.mailer import MailTransport


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yields an async database session, auto-closes when the request ends."""
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives the request (campaign listeners)."""
    return AsyncSessionLocal


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.registry


def get_results(request: Request) -> ResultStore:
    return request.app.state.results


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_mail_transport(config: Settings = Depends(get_settings)) -> MailTransport:
    """SMTP transport built from settings; only used when SMTP is configured."""
    return MailTransport.from_settings(config)
