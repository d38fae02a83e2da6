"""
Tests for the ProgressEventBus, driven through the registry the way the
SSE endpoint uses it.
"""

from jobs.registry import JobRegistry
from models.enums import JobStatus, TerminalStatus


class Recorder:
    def __init__(self):
        self.events: list[tuple[str, object]] = []

    def progress(self, snapshot):
        self.events.append(("progress", snapshot))

    def complete(self, snapshot):
        self.events.append(("complete", snapshot))

    @property
    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.events]


def test_subscribe_replays_latest_snapshot():
    registry = JobRegistry()
    job_id = registry.create(2).job_id
    registry.update(job_id, status=JobStatus.RUNNING)

    rec = Recorder()
    registry.subscribe(job_id, rec.progress, rec.complete)

    assert rec.kinds == ["progress"]
    assert rec.events[0][1].status == JobStatus.RUNNING


def test_progress_then_single_complete():
    registry = JobRegistry()
    job_id = registry.create(2).job_id
    rec = Recorder()
    registry.subscribe(job_id, rec.progress, rec.complete)

    registry.update(job_id, processed=1, sent=1)
    registry.update(job_id, processed=2, sent=2)
    registry.complete(job_id, TerminalStatus.COMPLETED)
    registry.complete(job_id, TerminalStatus.COMPLETED)

    assert rec.kinds == ["progress", "progress", "progress", "complete"]
    assert rec.events[-1][1].status == JobStatus.COMPLETED


def test_late_subscriber_to_finished_job_gets_progress_then_complete():
    registry = JobRegistry()
    job_id = registry.create(1).job_id
    registry.update(job_id, processed=1, sent=1)
    registry.complete(job_id, TerminalStatus.COMPLETED)

    rec = Recorder()
    registry.subscribe(job_id, rec.progress, rec.complete)

    assert rec.kinds == ["progress", "complete"]
    assert all(snapshot.status == JobStatus.COMPLETED for _, snapshot in rec.events)


def test_multiple_independent_subscribers():
    registry = JobRegistry()
    job_id = registry.create(1).job_id
    first, second = Recorder(), Recorder()
    registry.subscribe(job_id, first.progress, first.complete)
    registry.subscribe(job_id, second.progress, second.complete)

    registry.update(job_id, processed=1, sent=1)

    assert first.kinds == second.kinds == ["progress", "progress"]


def test_unsubscribe_stops_delivery_and_is_idempotent():
    registry = JobRegistry()
    job_id = registry.create(1).job_id
    rec = Recorder()
    unsubscribe = registry.subscribe(job_id, rec.progress, rec.complete)

    unsubscribe()
    unsubscribe()
    registry.update(job_id, processed=1, sent=1)

    assert rec.kinds == ["progress"]
    assert registry.bus.subscriber_count(job_id) == 0


def test_failing_subscriber_does_not_starve_others():
    registry = JobRegistry()
    job_id = registry.create(1).job_id
    rec = Recorder()

    def explode(_snapshot):
        raise RuntimeError("subscriber bug")

    registry.subscribe(job_id, lambda s: None, explode)
    registry.subscribe(job_id, rec.progress, rec.complete)
    registry.complete(job_id, TerminalStatus.COMPLETED)

    assert rec.kinds == ["progress", "complete"]


def test_subscribe_unknown_job_returns_none():
    rec = Recorder()
    assert JobRegistry().subscribe("missing", rec.progress, rec.complete) is None
    assert rec.events == []


def test_complete_drops_subscribers():
    registry = JobRegistry()
    job_id = registry.create(1).job_id
    rec = Recorder()
    registry.subscribe(job_id, rec.progress, rec.complete)

    registry.complete(job_id, TerminalStatus.CANCELLED)

    assert registry.bus.subscriber_count(job_id) == 0
