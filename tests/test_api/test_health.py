"""Tests for the /health endpoint."""

import pytest


@pytest.mark.asyncio
async def test_health_check(client):
    """GET /health should return healthy status."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["postgres"] == "ok"
    assert data["jobs"] == 0
    assert data["dispatch_tasks"] == 0


@pytest.mark.asyncio
async def test_health_counts_jobs(client):
    await client.post("/send/recipients", json={
        "recipients": [{"name": "Asha", "email": "asha@example.com"}],
        "sender": "me@example.com",
        "subject": "Hi",
        "body": "Hello",
        "dry_run": True,
    })

    data = (await client.get("/health")).json()
    assert data["jobs"] == 1
