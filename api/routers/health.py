"""
Health check endpoint.

This is the first thing you hit to verify the system is running.
It checks Postgres connectivity and reports how busy the dispatcher is.

In production, load balancers and container orchestrators (k8s) use
health endpoints to decide if a service is ready to receive traffic.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

from api.dependencies import get_db, get_dispatcher, get_registry
from jobs.registry import JobRegistry
from services.dispatch import Dispatcher

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    registry: JobRegistry = Depends(get_registry),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> dict:
    """Check that Postgres is reachable and report dispatch activity."""
    # Test Postgres: run a trivial query
    await db.execute(text("SELECT 1"))

    return {
        "status": "healthy",
        "postgres": "ok",
        "jobs": len(registry),
        "active_jobs": registry.active_count(),
        "dispatch_tasks": dispatcher.launcher.active_count,
    }
