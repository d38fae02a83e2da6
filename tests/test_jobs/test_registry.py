"""
Tests for the JobRegistry.

The registry is the single source of truth for job state, so these pin down:
- creation defaults and copy-on-read
- update merging, unknown-field rejection and terminal freezing
- completion with the closed set of terminal statuses
- cancellation flag idempotence
- history: at most history_limit jobs, newest ones, creation order
"""

from datetime import datetime, timezone

import pytest

from jobs.record import FailureRecord, RecentEvent
from jobs.registry import JobRegistry
from models.enums import JobStatus, RecipientStatus, TerminalStatus


def _event(i: int) -> RecentEvent:
    return RecentEvent(
        timestamp=datetime.now(timezone.utc),
        client_name=f"Client {i}",
        client_email=f"client{i}@example.com",
        status=RecipientStatus.ACCEPTED,
    )


def test_create_starts_queued_with_zero_counters():
    registry = JobRegistry()
    record = registry.create(3, batch_size=2, batch_delay_seconds=60.0)

    assert record.status == JobStatus.QUEUED
    assert record.total == 3
    assert (record.processed, record.sent, record.errors) == (0, 0, 0)
    assert record.batch_size == 2
    assert record.batch_delay_seconds == 60.0
    assert record.created_at is not None
    assert record.cancel_requested is False
    assert len(record.job_id) == 32


def test_job_ids_are_unique():
    registry = JobRegistry()
    ids = {registry.create(1).job_id for _ in range(50)}
    assert len(ids) == 50


def test_get_unknown_returns_none():
    assert JobRegistry().get("missing") is None


def test_get_returns_a_detached_copy():
    """Mutating a snapshot must not leak into the registry."""
    registry = JobRegistry()
    job_id = registry.create(2).job_id

    snapshot = registry.get(job_id)
    snapshot.sent = 99
    snapshot.failures.append(FailureRecord("x", "x@example.com", "boom"))

    fresh = registry.get(job_id)
    assert fresh.sent == 0
    assert fresh.failures == []


def test_update_merges_fields():
    registry = JobRegistry()
    job_id = registry.create(2).job_id

    record = registry.update(job_id, status=JobStatus.RUNNING, processed=1, sent=1)

    assert record.status == JobStatus.RUNNING
    assert record.processed == 1
    assert registry.get(job_id).sent == 1


def test_update_rejects_unknown_fields():
    registry = JobRegistry()
    job_id = registry.create(1).job_id

    with pytest.raises(ValueError, match="bogus"):
        registry.update(job_id, bogus=1)


def test_update_unknown_job_returns_none():
    assert JobRegistry().update("missing", sent=1) is None


def test_complete_sets_terminal_fields():
    registry = JobRegistry()
    job_id = registry.create(1).job_id

    record = registry.complete(job_id, TerminalStatus.FAILED, "SMTP down")

    assert record.status == JobStatus.FAILED
    assert record.error_message == "SMTP down"
    assert record.completed_at is not None
    assert record.updated_at == record.completed_at


def test_terminal_job_is_frozen():
    """Once completed, neither update() nor a second complete() changes anything."""
    registry = JobRegistry()
    job_id = registry.create(2).job_id
    registry.update(job_id, processed=2, sent=2)
    registry.complete(job_id, TerminalStatus.COMPLETED)

    registry.update(job_id, sent=0, processed=0)
    registry.complete(job_id, TerminalStatus.FAILED, "late failure")

    record = registry.get(job_id)
    assert record.status == JobStatus.COMPLETED
    assert record.sent == 2
    assert record.error_message is None


def test_complete_accepts_status_value():
    registry = JobRegistry()
    job_id = registry.create(1).job_id
    assert registry.complete(job_id, "cancelled").status == JobStatus.CANCELLED


def test_request_cancel_is_idempotent():
    registry = JobRegistry()
    job_id = registry.create(3).job_id

    first = registry.request_cancel(job_id)
    second = registry.request_cancel(job_id)

    assert first.cancel_requested is True
    assert second.cancel_requested is True
    assert second.updated_at == first.updated_at
    assert registry.is_cancel_requested(job_id)


def test_request_cancel_on_finished_job_changes_nothing():
    registry = JobRegistry()
    job_id = registry.create(1).job_id
    registry.complete(job_id, TerminalStatus.COMPLETED)

    record = registry.request_cancel(job_id)

    assert record.status == JobStatus.COMPLETED
    assert record.cancel_requested is False


def test_request_cancel_unknown_job():
    registry = JobRegistry()
    assert registry.request_cancel("missing") is None
    assert registry.is_cancel_requested("missing") is False


def test_list_recent_caps_at_history_limit_in_creation_order():
    registry = JobRegistry(history_limit=20)
    ids = [registry.create(1).job_id for _ in range(25)]

    history = registry.list_recent()

    assert len(history) == 20
    assert [r.job_id for r in history] == ids[-20:]


def test_list_recent_trims_embedded_lists():
    """Newest recent events are kept; the oldest failures are kept."""
    registry = JobRegistry(recent_events_limit=3, failures_preview_limit=2)
    job_id = registry.create(10).job_id
    events = [_event(i) for i in range(6)]
    failures = [FailureRecord(f"C{i}", f"c{i}@example.com", f"err {i}") for i in range(4)]
    registry.update(job_id, recent_events=events, failures=failures)

    [entry] = registry.list_recent()

    assert entry.recent_events == events[-3:]
    assert entry.failures == failures[:2]
    # The live record keeps everything
    assert len(registry.get(job_id).failures) == 4


def test_active_count():
    registry = JobRegistry()
    a = registry.create(1).job_id
    registry.create(1)
    registry.complete(a, TerminalStatus.COMPLETED)

    assert registry.active_count() == 1
    assert len(registry) == 2
