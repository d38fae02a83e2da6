"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Builds the in-memory dispatch machinery (registry, results, limiter, launcher)
3. Registers all routers (send, campaigns, segments, prospects, tracking, health)
4. Runs startup/shutdown logic (create DB tables, stop running jobs)

The dispatch objects are created in create_app() rather than in the lifespan
so that every app instance, including the ones tests drive through
ASGITransport without a lifespan, has its own working set.

The `lifespan` context manager is FastAPI's way of handling startup/shutdown.
It replaces the older @app.on_event("startup") pattern.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000 --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from config.settings import Settings, settings
from jobs.events import ProgressEventBus
from jobs.registry import JobRegistry
from jobs.results import ResultStore
from models.base import async_engine, Base
from scheduler.limiter import ConcurrencyLimiter
from services.dispatch import Dispatcher
from worker.pool import JobLauncher
from api.routers import campaigns, health, prospects, segments, send, tracking

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Runs on startup (before yield) and shutdown (after yield).

    Startup:
    - Creates all DB tables if they don't exist (safe to run multiple times)

    Shutdown:
    - Cancels in-flight dispatch jobs (each one ends up `failed`)
    - Disposes the DB engine (closes connection pool)
    """
    # ── Startup ─────────────────────────────────────────────────
    logger.info("Creating database tables...")
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(
        f"API ready — SMTP {'configured' if app.state.settings.smtp_configured else 'NOT configured'}, "
        f"send concurrency {app.state.limiter.max_concurrency}"
    )

    yield  # app is running and serving requests between startup and shutdown

    # ── Shutdown ────────────────────────────────────────────────
    await app.state.launcher.shutdown()
    await async_engine.dispose()
    logger.info("API shut down")


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    config = config or settings
    app = FastAPI(
        title="Prospect Mailer",
        description="Batched, rate-limited email dispatch with live progress streaming and cancellation",
        version="1.0.0",
        lifespan=lifespan,
    )

    # One registry/limiter/launcher per app: the limiter ceiling is shared by all jobs
    registry = JobRegistry(
        bus=ProgressEventBus(),
        history_limit=config.JOB_HISTORY_LIMIT,
        recent_events_limit=config.RECENT_EVENTS_LIMIT,
        failures_preview_limit=config.HISTORY_FAILURES_LIMIT,
    )
    results = ResultStore()
    limiter = ConcurrencyLimiter(config.SEND_CONCURRENCY)
    launcher = JobLauncher()

    app.state.settings = config
    app.state.registry = registry
    app.state.results = results
    app.state.limiter = limiter
    app.state.launcher = launcher
    app.state.dispatcher = Dispatcher(registry, results, limiter, launcher)

    # Register routers: each one adds its endpoints to the app
    app.include_router(health.router)
    app.include_router(send.router)
    app.include_router(campaigns.router)
    app.include_router(segments.router)
    app.include_router(prospects.router)
    app.include_router(tracking.router)

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
